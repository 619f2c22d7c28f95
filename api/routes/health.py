"""
Health check endpoints.

Provides endpoints for monitoring and load balancer health checks.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_data_access
from api.schemas import HealthResponse
from core.storage import DataAccess


router = APIRouter(tags=["Health"])


@router.get("/api/health", response_model=HealthResponse)
async def health_check(data: DataAccess = Depends(get_data_access)) -> HealthResponse:
    """
    Report which backend is bound and whether MongoDB is reachable.

    Always 200 while the process is serving; a local fallback shows up as
    ``db: offline`` with the connection error attached.
    """
    return HealthResponse(
        storage=data.mode.value if data.mode else None,
        db="connected" if data.connected else "offline",
        last_error=data.last_error,
    )
