"""Health and metrics API routes."""

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy import text

from docmcp import __version__
from docmcp.api.schemas import ComponentStatusSchema, HealthResponseSchema
from docmcp.api.service import Services, get_services
from docmcp.observability import get_metrics

logger = structlog.get_logger()

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponseSchema)
async def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.

    No authentication; reports database reachability and scheduler state.
    """
    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.warning("health_database_unreachable", error=str(e))
        database = "error"

    scheduler = services.scheduler.scheduler
    components = ComponentStatusSchema(
        database=database,
        scheduler="running" if scheduler is not None and scheduler.running else "stopped",
    )

    return HealthResponseSchema(
        status="healthy" if database == "ok" else "degraded",
        components=components,
        version=__version__,
    )


@router.get("/metrics")
async def metrics():
    """Get Prometheus metrics."""
    data, content_type = get_metrics()
    return Response(content=data, media_type=content_type)
