"""
Health check endpoint.
"""

import structlog
from fastapi import APIRouter, Depends

from problem_vault import __version__
from problem_vault.api.dependencies import (
    get_collection_service,
    get_database,
    get_pipeline_service,
)
from problem_vault.api.models import HealthResponse
from problem_vault.services.collection_service import CollectionService
from problem_vault.services.pipeline_service import SignalPipelineService
from problem_vault.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Database reachability plus collector and pipeline activity.",
)
async def health_check(
    db: Database = Depends(get_database),
    collections: CollectionService = Depends(get_collection_service),
    pipeline: SignalPipelineService = Depends(get_pipeline_service),
) -> HealthResponse:
    healthy = await db.health_check()
    if not healthy:
        logger.warning("Health check: database unreachable")

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        database="healthy" if healthy else "unhealthy",
        running_collectors=[source.value for source in collections.running_sources],
        pipeline_running=pipeline.running,
        version=__version__,
    )
