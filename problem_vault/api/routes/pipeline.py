"""Pipeline endpoints."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from problem_vault.api.auth import verify_api_key
from problem_vault.api.dependencies import get_pipeline_service
from problem_vault.api.models import PipelineStatusResponse
from problem_vault.services.pipeline_service import SignalPipelineService

router = APIRouter(prefix="/pipeline")


@router.post(
    "/process",
    summary="Process all unprocessed signals",
    description="Runs synchronously and returns aggregate counts, or "
    "{error, status} when the run was SKIPPED or ALREADY_RUNNING.",
)
async def process_signals(
    service: SignalPipelineService = Depends(get_pipeline_service),
    api_key: str = Depends(verify_api_key),
) -> JSONResponse:
    result = await service.process_unprocessed_signals()
    status_code = status.HTTP_400_BAD_REQUEST if result.error else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=result.to_dict())


@router.get(
    "/status",
    response_model=PipelineStatusResponse,
    summary="Whether a pipeline run is in progress",
)
async def pipeline_status(
    service: SignalPipelineService = Depends(get_pipeline_service),
    api_key: str = Depends(verify_api_key),
) -> PipelineStatusResponse:
    return PipelineStatusResponse(running=service.running)
