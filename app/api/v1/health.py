"""Health check endpoint with database connectivity and cache counters."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.v1.auth import get_cache_service
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse
from app.services.cache import CacheService

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    cache: Annotated[CacheService, Depends(get_cache_service)],
) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    connected = check_db_connected(db)

    return HealthResponse(
        status="ok" if connected else "degraded",
        environment=request.app.state.settings.APP_ENV,
        database="connected" if connected else "disconnected",
        cache=cache.metrics(),
    )
