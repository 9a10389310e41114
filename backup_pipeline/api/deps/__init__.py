"""API-specific dependencies."""

# Re-export common dependencies
from .dependencies import (
    get_backup_service,
    get_engine,
    get_service_cache,
)

__all__ = [
    "get_backup_service",
    "get_engine",
    "get_service_cache",
]
