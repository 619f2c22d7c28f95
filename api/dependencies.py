"""
FastAPI dependencies for dependency injection.

Provides the process-wide DataAccess instance to route handlers.
"""

from typing import Optional

from core.storage import DataAccess


# Global singleton (set during app lifespan)
_data_access: Optional[DataAccess] = None


def set_data_access(data_access: Optional[DataAccess]) -> None:
    """Set the global data access instance."""
    global _data_access
    _data_access = data_access


async def get_data_access() -> DataAccess:
    """
    Dependency that provides the data access facade.

    Re-enters initialize() on every request, which is free once bound. This
    keeps handlers working in request-scoped deployments where the lifespan
    may not have run in the current process.

    Usage:
        @router.get("/categories")
        async def list_categories(
            data: DataAccess = Depends(get_data_access)
        ):
            ...
    """
    if _data_access is None:
        raise RuntimeError("Data access not initialized")
    await _data_access.initialize()
    return _data_access
