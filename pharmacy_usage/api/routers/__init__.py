"""API routers."""

from .admin import router as admin_router
from .health import router as health_router
from .usage import router as usage_router

__all__ = [
    "admin_router",
    "health_router",
    "usage_router",
]
