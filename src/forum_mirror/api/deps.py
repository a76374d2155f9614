# src/forum_mirror/api/deps.py
"""Shared FastAPI dependencies."""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from forum_mirror.core.settings import settings
from forum_mirror.db.session import get_db
from forum_mirror.services.store import ForumStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request) -> ForumStore:
    """Return the store built at application startup."""
    return request.app.state.store


def get_admin_token() -> str | None:
    """Return the configured admin bearer token."""
    return settings.admin_api_token


SessionDep = Annotated[AsyncSession, Depends(get_db)]
StoreDep = Annotated[ForumStore, Depends(get_store)]


def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    expected: Annotated[str | None, Depends(get_admin_token)],
) -> None:
    """Reject requests that do not carry the admin bearer token.

    Raises:
        HTTPException: 503 when no token is configured, 401 on a missing or
            wrong token.
    """
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled",
        )
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
