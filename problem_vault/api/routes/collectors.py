"""Collector control endpoints: start, stop, status and run history."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from problem_vault.api.auth import verify_api_key
from problem_vault.api.dependencies import get_collection_service
from problem_vault.api.models import (
    CollectionStartedResponse,
    CollectionStoppedResponse,
    CollectorStatusResponse,
    ErrorResponse,
    RunLogResponse,
)
from problem_vault.collectors.schemas import CollectorRunLog, SourceType
from problem_vault.services.collection_service import (
    AlreadyRunningError,
    CollectionService,
    NotRunningError,
    UnknownSourceError,
)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _unknown(raw: str) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, f"Unknown source type: {raw}")


def _run_log_to_response(log: CollectorRunLog) -> RunLogResponse:
    return RunLogResponse(
        id=log.id,
        source_type=log.source_type.value,
        status=log.status.value,
        items_collected=log.items_collected,
        duplicates=log.duplicates,
        new_problems=log.new_problems,
        duration_ms=log.duration_ms,
        error=log.error,
        started_at=log.started_at,
        completed_at=log.completed_at,
    )


@router.post(
    "/collect/{source_type}",
    response_model=CollectionStartedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Start a collection run",
)
async def start_collection(
    source_type: str,
    service: CollectionService = Depends(get_collection_service),
    api_key: str = Depends(verify_api_key),
):
    parsed = SourceType.parse(source_type)
    if parsed is None:
        return _unknown(source_type)

    try:
        started = await service.start_collection(parsed)
    except UnknownSourceError as e:
        return _error(status.HTTP_404_NOT_FOUND, e.message)
    except AlreadyRunningError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e.message)

    return CollectionStartedResponse(**started)


@router.post(
    "/stop/{source_type}",
    response_model=CollectionStoppedResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Stop a running collection",
)
async def stop_collection(
    source_type: str,
    service: CollectionService = Depends(get_collection_service),
    api_key: str = Depends(verify_api_key),
):
    parsed = SourceType.parse(source_type)
    if parsed is None:
        return _unknown(source_type)

    try:
        stopped = await service.stop_collection(parsed)
    except NotRunningError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e.message)

    return CollectionStoppedResponse(**stopped)


@router.get(
    "/status",
    response_model=list[CollectorStatusResponse],
    summary="Run state of every source",
)
async def list_statuses(
    service: CollectionService = Depends(get_collection_service),
    api_key: str = Depends(verify_api_key),
):
    return [CollectorStatusResponse(**item) for item in await service.get_statuses()]


@router.get(
    "/status/{source_type}",
    response_model=CollectorStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Run state of one source",
)
async def get_status(
    source_type: str,
    service: CollectionService = Depends(get_collection_service),
    api_key: str = Depends(verify_api_key),
):
    parsed = SourceType.parse(source_type)
    if parsed is None:
        return _unknown(source_type)

    item = await service.get_status(parsed)
    if item is None:
        return _unknown(source_type)
    return CollectorStatusResponse(**item)


@router.get(
    "/runs/{source_type}",
    response_model=list[RunLogResponse],
    responses={404: {"model": ErrorResponse}},
    summary="Recent finished runs of one source",
)
async def recent_runs(
    source_type: str,
    limit: int = Query(default=20, ge=1, le=200),
    service: CollectionService = Depends(get_collection_service),
    api_key: str = Depends(verify_api_key),
):
    parsed = SourceType.parse(source_type)
    if parsed is None:
        return _unknown(source_type)

    return [_run_log_to_response(log) for log in await service.recent_runs(parsed, limit)]
