"""Tests for CollectionService orchestration and run-state transitions."""

import asyncio

import pytest

from problem_vault.collectors.schemas import (
    CollectionResult,
    CollectionStatus,
    RunStatus,
    SourceType,
)
from problem_vault.services.collection_service import (
    RESET_ON_STARTUP,
    STOPPED_BY_USER,
    AlreadyRunningError,
    CollectionService,
    NotRunningError,
    UnknownSourceError,
)
from tests.fakes import FakeRunConfigRepository, FakeRunLogRepository


class ControlledCollector:
    """Collector that runs until released or cancelled."""

    def __init__(self, source_type: SourceType, status=CollectionStatus.COMPLETED, error=None):
        self.source_type = source_type
        self.status = status
        self.error = error
        self.items = 3
        self.release = asyncio.Event()
        self.tokens = []

    async def collect(self, config, token=None):
        self.tokens.append(token)
        while not self.release.is_set() and not token.cancelled:
            await asyncio.sleep(0.001)
        status = CollectionStatus.CANCELLED if token.cancelled else self.status
        return CollectionResult(
            status=status,
            items_collected=self.items,
            duplicates_skipped=1,
            last_cursor="cursor-1",
            error=self.error,
            duration_ms=5,
        )


@pytest.fixture
def configs() -> FakeRunConfigRepository:
    return FakeRunConfigRepository()


@pytest.fixture
def run_logs() -> FakeRunLogRepository:
    return FakeRunLogRepository()


@pytest.fixture
def reddit() -> ControlledCollector:
    return ControlledCollector(SourceType.REDDIT)


@pytest.fixture
def service(configs, run_logs, reddit) -> CollectionService:
    return CollectionService({SourceType.REDDIT: reddit}, configs, run_logs)


async def _start_and_get_task(service: CollectionService, source_type: SourceType) -> asyncio.Task:
    await service.start_collection(source_type)
    task = service._jobs[source_type].task
    await asyncio.sleep(0)
    return task


class TestStartCollection:
    @pytest.mark.asyncio
    async def test_start_marks_running_and_completes(self, service, configs, run_logs, reddit):
        response = await service.start_collection(SourceType.REDDIT)
        task = service._jobs[SourceType.REDDIT].task

        assert response == {
            "message": "Collection started for REDDIT",
            "sourceType": "REDDIT",
            "status": "RUNNING",
        }
        assert configs.configs[SourceType.REDDIT].status == RunStatus.RUNNING
        assert service.running_sources == [SourceType.REDDIT]

        reddit.release.set()
        result = await asyncio.wait_for(task, timeout=1)

        config = configs.configs[SourceType.REDDIT]
        assert result.status == CollectionStatus.COMPLETED
        assert config.status == RunStatus.IDLE
        assert config.items_last_run == 3
        assert config.last_cursor == "cursor-1"
        assert config.last_error is None
        assert config.last_run_at is not None
        assert run_logs.logs[0].status == CollectionStatus.COMPLETED
        assert run_logs.logs[0].duplicates == 1
        assert service.running_sources == []

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, service, reddit):
        task = await _start_and_get_task(service, SourceType.REDDIT)

        with pytest.raises(AlreadyRunningError):
            await service.start_collection(SourceType.REDDIT)

        reddit.release.set()
        await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_persisted_running_lock_rejects_start(self, service, configs, reddit):
        """Another process holding RUNNING blocks this one too."""
        configs.configs[SourceType.REDDIT].status = RunStatus.RUNNING

        with pytest.raises(AlreadyRunningError):
            await service.start_collection(SourceType.REDDIT)
        assert reddit.tokens == []

    @pytest.mark.asyncio
    async def test_unknown_collector(self, service):
        with pytest.raises(UnknownSourceError):
            await service.start_collection(SourceType.UPWORK)

    @pytest.mark.asyncio
    async def test_missing_config_row(self, run_logs, reddit):
        service = CollectionService(
            {SourceType.REDDIT: reddit}, FakeRunConfigRepository([]), run_logs
        )

        with pytest.raises(UnknownSourceError):
            await service.start_collection(SourceType.REDDIT)

    @pytest.mark.asyncio
    async def test_failed_run_records_error(self, configs, run_logs):
        failing = ControlledCollector(
            SourceType.GITHUB,
            status=CollectionStatus.FAILED,
            error="GET https://api.github.com failed with status 502",
        )
        failing.release.set()
        service = CollectionService({SourceType.GITHUB: failing}, configs, run_logs)

        task = await _start_and_get_task(service, SourceType.GITHUB)
        await asyncio.wait_for(task, timeout=1)

        status = await service.get_status(SourceType.GITHUB)
        assert status["status"] == "FAILED"
        assert "502" in status["lastError"]
        assert run_logs.logs[0].status == CollectionStatus.FAILED

    @pytest.mark.asyncio
    async def test_collector_exception_is_contained(self, configs, run_logs):
        class Exploding:
            source_type = SourceType.HACKER_NEWS

            async def collect(self, config, token=None):
                raise RuntimeError("boom")

        service = CollectionService({SourceType.HACKER_NEWS: Exploding()}, configs, run_logs)

        task = await _start_and_get_task(service, SourceType.HACKER_NEWS)
        result = await asyncio.wait_for(task, timeout=1)

        assert result.status == CollectionStatus.FAILED
        assert configs.configs[SourceType.HACKER_NEWS].status == RunStatus.FAILED
        assert configs.configs[SourceType.HACKER_NEWS].last_error == "boom"


class TestStopCollection:
    @pytest.mark.asyncio
    async def test_stop_when_idle(self, service):
        with pytest.raises(NotRunningError):
            await service.stop_collection(SourceType.REDDIT)

    @pytest.mark.asyncio
    async def test_stop_cancels_and_keeps_partial_counts(self, service, configs, run_logs, reddit):
        task = await _start_and_get_task(service, SourceType.REDDIT)

        response = await service.stop_collection(SourceType.REDDIT)

        assert response == {
            "message": "Stop signal sent for REDDIT",
            "sourceType": "REDDIT",
        }
        assert reddit.tokens[0].cancelled is True
        assert configs.configs[SourceType.REDDIT].status == RunStatus.IDLE

        result = await asyncio.wait_for(task, timeout=1)

        config = configs.configs[SourceType.REDDIT]
        assert result.status == CollectionStatus.CANCELLED
        assert config.status == RunStatus.IDLE
        assert config.last_error == STOPPED_BY_USER
        assert config.items_last_run == 3
        assert run_logs.logs[0].status == CollectionStatus.CANCELLED


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_reset_stale_statuses(self, service, configs):
        configs.configs[SourceType.GITHUB].status = RunStatus.RUNNING

        reset = await service.reset_stale_statuses()

        assert reset == [SourceType.GITHUB]
        assert configs.configs[SourceType.GITHUB].status == RunStatus.IDLE
        assert configs.configs[SourceType.GITHUB].last_error == RESET_ON_STARTUP

    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight_jobs(self, service, configs, reddit):
        task = await _start_and_get_task(service, SourceType.REDDIT)

        await service.shutdown(timeout=1)

        assert task.done()
        assert reddit.tokens[0].cancelled
        assert configs.configs[SourceType.REDDIT].status == RunStatus.IDLE

    @pytest.mark.asyncio
    async def test_run_collection_in_foreground(self, service, reddit):
        reddit.release.set()

        result = await service.run_collection(SourceType.REDDIT)

        assert result.status == CollectionStatus.COMPLETED
        assert service.running_sources == []

    @pytest.mark.asyncio
    async def test_statuses_and_recent_runs(self, service, reddit):
        reddit.release.set()
        await service.run_collection(SourceType.REDDIT)

        statuses = await service.get_statuses()
        runs = await service.recent_runs(SourceType.REDDIT)

        assert len(statuses) == len(SourceType)
        assert {s["sourceType"] for s in statuses} == {s.value for s in SourceType}
        assert len(runs) == 1
        assert await service.get_status(SourceType.REDDIT) is not None
