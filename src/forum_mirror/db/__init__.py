# src/forum_mirror/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, create_engine_for, create_session_factory, create_tables, get_db

__all__ = ["Base", "create_engine_for", "create_session_factory", "create_tables", "get_db"]
