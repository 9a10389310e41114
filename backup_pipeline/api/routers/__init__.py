"""API routers."""

from .backups import router as backups_router
from .health import router as health_router
from .schedules import router as schedules_router

__all__ = [
    "backups_router",
    "health_router",
    "schedules_router",
]
