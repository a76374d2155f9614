"""Application settings and configuration.

This module defines all configuration options for the forum mirror.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files. The
    sync core never reads this object implicitly; the CLI and the HTTP app
    pass the relevant values into the objects they construct.
    """

    # Application metadata
    app_name: str = Field(default="Forum Mirror", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./forum_mirror.db",
        alias="DATABASE_URL",
    )
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Discord source
    discord_token: str | None = Field(default=None, alias="DISCORD_TOKEN")
    discord_guild_id: int | None = Field(default=None, alias="DISCORD_GUILD_ID")

    # Author pseudonymisation
    author_alias_salt: str = Field(default="", alias="AUTHOR_ALIAS_SALT")
    author_alias_length: int = Field(default=16, ge=8, le=64, alias="AUTHOR_ALIAS_LENGTH")
    staff_csv_path: str | None = Field(default=None, alias="STAFF_CSV_PATH")

    # Sync behaviour
    sync_page_size: int = Field(default=100, ge=1, le=100, alias="SYNC_PAGE_SIZE")
    sync_archived_page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        alias="SYNC_ARCHIVED_PAGE_SIZE",
    )
    sync_page_delay_seconds: float = Field(default=0.1, ge=0.0, alias="SYNC_PAGE_DELAY_SECONDS")
    sync_rank_order: str = Field(default="newest_first", alias="SYNC_RANK_ORDER")
    sync_lock_ttl_seconds: int = Field(default=3600, ge=1, alias="SYNC_LOCK_TTL_SECONDS")

    # Image metadata probing
    image_probe_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        alias="IMAGE_PROBE_TIMEOUT_SECONDS",
    )
    image_probe_max_bytes: int = Field(
        default=8 * 1024 * 1024,
        gt=0,
        alias="IMAGE_PROBE_MAX_BYTES",
    )

    # Admin API
    admin_api_token: str | None = Field(default=None, alias="ADMIN_API_TOKEN")

    # CORS settings for the web forum
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:4321"],
        alias="CORS_ORIGINS",
    )
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts async driver URLs to their synchronous counterparts for
        Alembic migrations.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        replacements = {
            "sqlite+aiosqlite": "sqlite",
            "postgresql+asyncpg": "postgresql+psycopg",
            "mysql+aiomysql": "mysql+pymysql",
        }
        for async_scheme, sync_scheme in replacements.items():
            if url.startswith(async_scheme):
                return url.replace(async_scheme, sync_scheme, 1)
        return url


settings = Settings()
