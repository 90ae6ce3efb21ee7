"""
Collection service - runs source collectors on demand.

Each source type moves through IDLE → RUNNING → {IDLE, FAILED}. The
persisted status is the lock: a run only starts after a compare-and-set
moves the source's config row to RUNNING. The in-memory job map exists
for cancellation plumbing.

Features:
- Single-flight execution per source
- Cooperative stop via cancellation tokens
- Run outcome and run-log persistence
- Stale RUNNING reset at startup
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from problem_vault.collectors.base import BaseCollector
from problem_vault.collectors.cancellation import CancellationToken
from problem_vault.collectors.repository import RunConfigRepository, RunLogRepository
from problem_vault.collectors.schemas import (
    CollectionResult,
    CollectionStatus,
    CollectorRunConfig,
    CollectorRunLog,
    RunStatus,
    SourceType,
)
from problem_vault.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

STOPPED_BY_USER = "Stopped by user"
RESET_ON_STARTUP = "Reset on startup: previous run did not complete"


class CollectionError(Exception):
    """Base class for rejected collection requests."""

    def __init__(self, source_type: SourceType | str, message: str):
        super().__init__(message)
        self.source_type = source_type
        self.message = message


class UnknownSourceError(CollectionError):
    """No collector or config row exists for the source."""


class AlreadyRunningError(CollectionError):
    """The source already holds the RUNNING lock."""


class NotRunningError(CollectionError):
    """Stop was requested for a source with no in-flight job."""


@dataclass
class _Job:
    task: asyncio.Task
    token: CancellationToken
    started_at: datetime


class CollectionService:
    """
    Orchestrates collector runs.

    Usage:
        service = CollectionService(collectors, configs, run_logs)
        await service.reset_stale_statuses()
        await service.start_collection(SourceType.REDDIT)
    """

    def __init__(
        self,
        collectors: dict[SourceType, BaseCollector],
        configs: RunConfigRepository,
        run_logs: RunLogRepository,
    ):
        self._collectors = collectors
        self._configs = configs
        self._run_logs = run_logs
        self._jobs: dict[SourceType, _Job] = {}
        self._metrics = get_metrics()

        logger.info(
            "Collection service initialized",
            collectors=[source.value for source in collectors],
        )

    @property
    def running_sources(self) -> list[SourceType]:
        return [source for source, job in self._jobs.items() if not job.task.done()]

    def is_running(self, source_type: SourceType) -> bool:
        job = self._jobs.get(source_type)
        return job is not None and not job.task.done()

    async def reset_stale_statuses(self) -> list[SourceType]:
        """RUNNING cannot survive a restart; put such sources back to IDLE."""
        reset = await self._configs.reset_stale(RESET_ON_STARTUP)
        for source_type in reset:
            logger.warning("Reset stale RUNNING status", source_type=source_type.value)
        return reset

    async def _acquire(self, source_type: SourceType) -> tuple[BaseCollector, CollectorRunConfig]:
        collector = self._collectors.get(source_type)
        if collector is None:
            raise UnknownSourceError(source_type, f"No collector for {source_type.value}")

        if self.is_running(source_type):
            raise AlreadyRunningError(
                source_type, f"Collection already running for {source_type.value}"
            )

        config = await self._configs.try_acquire(source_type)
        if config is None:
            if await self._configs.get(source_type) is None:
                raise UnknownSourceError(
                    source_type, f"No collector config for {source_type.value}"
                )
            raise AlreadyRunningError(
                source_type, f"Collection already running for {source_type.value}"
            )
        return collector, config

    async def start_collection(self, source_type: SourceType) -> dict[str, Any]:
        """
        Start a background run for one source.

        Raises:
            UnknownSourceError: No collector or config for the source
            AlreadyRunningError: The source is already RUNNING
        """
        collector, config = await self._acquire(source_type)

        token = CancellationToken()
        started_at = datetime.now(timezone.utc)
        task = asyncio.create_task(
            self._run_collection(collector, config, token, started_at),
            name=f"collect-{source_type.value.lower()}",
        )
        job = _Job(task=task, token=token, started_at=started_at)
        self._jobs[source_type] = job
        task.add_done_callback(lambda _: self._forget(source_type, job))

        logger.info("Collection started", source_type=source_type.value)
        return {
            "message": f"Collection started for {source_type.value}",
            "sourceType": source_type.value,
            "status": RunStatus.RUNNING.value,
        }

    async def run_collection(
        self,
        source_type: SourceType,
        token: CancellationToken | None = None,
    ) -> CollectionResult:
        """Run one collection in the caller's task (used by the CLI)."""
        collector, config = await self._acquire(source_type)
        token = token or CancellationToken()
        started_at = datetime.now(timezone.utc)
        job = _Job(task=asyncio.current_task(), token=token, started_at=started_at)
        self._jobs[source_type] = job
        try:
            return await self._run_collection(collector, config, token, started_at)
        finally:
            self._forget(source_type, job)

    async def stop_collection(self, source_type: SourceType) -> dict[str, Any]:
        """
        Signal the in-flight run to stop and release the source.

        Raises:
            NotRunningError: Nothing is running for the source
        """
        job = self._jobs.get(source_type)
        if job is None or job.task.done():
            raise NotRunningError(
                source_type, f"No running collection for {source_type.value}"
            )

        job.token.cancel()
        await self._configs.set_status(source_type, RunStatus.IDLE, STOPPED_BY_USER)

        logger.info("Collection stop requested", source_type=source_type.value)
        return {
            "message": f"Stop signal sent for {source_type.value}",
            "sourceType": source_type.value,
        }

    async def get_statuses(self) -> list[dict[str, Any]]:
        return [config.to_status() for config in await self._configs.list_all()]

    async def get_status(self, source_type: SourceType) -> dict[str, Any] | None:
        config = await self._configs.get(source_type)
        return config.to_status() if config else None

    async def recent_runs(self, source_type: SourceType, limit: int = 20) -> list[CollectorRunLog]:
        return await self._run_logs.recent(source_type, limit)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Stop every in-flight run, waiting up to ``timeout`` for them to finish."""
        jobs = [job for job in self._jobs.values() if not job.task.done()]
        if not jobs:
            return

        logger.info("Stopping in-flight collections", count=len(jobs))
        for job in jobs:
            job.token.cancel()

        _, pending = await asyncio.wait([job.task for job in jobs], timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _forget(self, source_type: SourceType, job: _Job) -> None:
        if self._jobs.get(source_type) is job:
            del self._jobs[source_type]

    async def _run_collection(
        self,
        collector: BaseCollector,
        config: CollectorRunConfig,
        token: CancellationToken,
        started_at: datetime,
    ) -> CollectionResult:
        source = config.source_type.value
        log = logger.bind(source_type=source)
        start = time.monotonic()

        try:
            result = await collector.collect(config, token)
        except Exception as e:
            log.exception("Collector raised unexpectedly")
            result = CollectionResult(
                status=CollectionStatus.FAILED,
                error=str(e) or type(e).__name__,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        if token.cancelled:
            run_status, last_error = RunStatus.IDLE, STOPPED_BY_USER
        elif result.status == CollectionStatus.FAILED:
            run_status, last_error = RunStatus.FAILED, result.error
        else:
            run_status, last_error = RunStatus.IDLE, None

        completed_at = datetime.now(timezone.utc)
        try:
            await self._configs.save_outcome(
                config.source_type,
                run_status,
                items_last_run=result.items_collected,
                last_cursor=result.last_cursor,
                last_error=last_error,
                last_run_at=completed_at,
            )
            await self._run_logs.insert(
                CollectorRunLog(
                    source_type=config.source_type,
                    status=result.status,
                    items_collected=result.items_collected,
                    duplicates=result.duplicates_skipped,
                    duration_ms=result.duration_ms,
                    error=result.error,
                    started_at=started_at,
                    completed_at=completed_at,
                )
            )
        except Exception:
            log.exception("Failed to persist collection outcome")

        self._metrics.record_collection(
            source,
            result.status.value,
            items=result.items_collected,
            duplicates=result.duplicates_skipped,
            duration=result.duration_ms / 1000,
        )
        log.info(
            "Collection finished",
            status=result.status.value,
            items=result.items_collected,
            duplicates=result.duplicates_skipped,
            duration_ms=result.duration_ms,
            error=result.error,
        )
        return result
