# src/forum_mirror/main.py
"""Main entry point for the forum mirror web API."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.engine import make_url

from forum_mirror import __version__
from forum_mirror.api.v1 import admin_router, channels_router, threads_router
from forum_mirror.core.settings import settings
from forum_mirror.services.store import ForumStore

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Public mirror of community forum channels",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(channels_router, prefix="/api/v1")
app.include_router(threads_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    # Tests install their own store before the app starts.
    if getattr(app.state, "store", None) is None:
        app.state.store = ForumStore.from_url(
            settings.effective_database_url, echo=settings.sql_debug
        )
        logger.info(
            "Connected store to %s",
            make_url(settings.effective_database_url).render_as_string(hide_password=True),
        )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    store: ForumStore | None = getattr(app.state, "store", None)
    if store is not None:
        await store.dispose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("forum_mirror.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
