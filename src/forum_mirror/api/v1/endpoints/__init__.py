"""API endpoint modules for version 1."""

from .admin import router as admin_router
from .channels import router as channels_router
from .threads import router as threads_router

__all__ = [
    "admin_router",
    "channels_router",
    "threads_router",
]
