"""Tests for the control API routes."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from problem_vault.api import app as app_module
from problem_vault.api import auth
from problem_vault.api.auth import verify_api_key
from problem_vault.api.dependencies import (
    get_collection_service,
    get_database,
    get_pipeline_service,
)
from problem_vault.collectors.schemas import (
    CollectionResult,
    CollectionStatus,
    CollectorRunLog,
    RunStatus,
    SourceType,
)
from problem_vault.config.settings import Settings
from problem_vault.pipeline.schemas import PipelineResult
from problem_vault.services.collection_service import STOPPED_BY_USER, CollectionService
from tests.fakes import FakeRunConfigRepository, FakeRunLogRepository


class BlockingCollector:
    """Collector that keeps running until its token is cancelled."""

    source_type = SourceType.REDDIT

    async def collect(self, config, token=None):
        while not token.cancelled:
            await asyncio.sleep(0.001)
        return CollectionResult(status=CollectionStatus.CANCELLED, items_collected=2)


@pytest.fixture
def configs() -> FakeRunConfigRepository:
    return FakeRunConfigRepository([SourceType.REDDIT, SourceType.GITHUB])


@pytest.fixture
def run_logs() -> FakeRunLogRepository:
    return FakeRunLogRepository()


@pytest.fixture
def collection_service(configs, run_logs) -> CollectionService:
    return CollectionService({SourceType.REDDIT: BlockingCollector()}, configs, run_logs)


@pytest.fixture
def pipeline_service() -> MagicMock:
    service = MagicMock()
    service.running = False
    service.process_unprocessed_signals = AsyncMock(
        return_value=PipelineResult(total_signals=1, processed=1, no_problem=1)
    )
    return service


@pytest.fixture
def database() -> AsyncMock:
    db = AsyncMock()
    db.health_check = AsyncMock(return_value=True)
    return db


@pytest.fixture
def client(monkeypatch, collection_service, pipeline_service, database):
    @asynccontextmanager
    async def lifespan(app):
        yield
        await collection_service.shutdown(timeout=1.0)

    monkeypatch.setattr(app_module, "lifespan", lifespan)
    app = app_module.create_app()
    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_collection_service] = lambda: collection_service
    app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service
    app.dependency_overrides[get_database] = lambda: database

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


class TestCollectorRoutes:
    def test_start_returns_accepted(self, client, configs):
        resp = client.post("/collect/reddit")

        assert resp.status_code == 202
        assert resp.json() == {
            "message": "Collection started for REDDIT",
            "sourceType": "REDDIT",
            "status": "RUNNING",
        }
        assert configs.configs[SourceType.REDDIT].status == RunStatus.RUNNING

    def test_second_start_rejected(self, client):
        client.post("/collect/REDDIT")
        resp = client.post("/collect/REDDIT")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Collection already running for REDDIT"}

    def test_start_unknown_source(self, client):
        resp = client.post("/collect/myspace")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Unknown source type: myspace"}

    def test_start_source_without_collector(self, client):
        resp = client.post("/collect/GITHUB")

        assert resp.status_code == 404
        assert "GITHUB" in resp.json()["error"]

    def test_stop_running(self, client, configs):
        client.post("/collect/REDDIT")
        resp = client.post("/stop/REDDIT")

        assert resp.status_code == 200
        assert resp.json() == {"message": "Stop signal sent for REDDIT", "sourceType": "REDDIT"}
        config = configs.configs[SourceType.REDDIT]
        assert config.status == RunStatus.IDLE
        assert config.last_error == STOPPED_BY_USER

    def test_stop_idle(self, client):
        resp = client.post("/stop/REDDIT")

        assert resp.status_code == 400
        assert resp.json() == {"error": "No running collection for REDDIT"}

    def test_stop_unknown_source(self, client):
        assert client.post("/stop/nope").status_code == 404

    def test_list_statuses(self, client):
        resp = client.get("/status")

        assert resp.status_code == 200
        body = resp.json()
        assert [item["sourceType"] for item in body] == ["GITHUB", "REDDIT"]
        assert body[0] == {
            "sourceType": "GITHUB",
            "enabled": True,
            "status": "IDLE",
            "lastRunAt": "",
            "itemsLastRun": 0,
            "lastError": "",
        }

    def test_single_status(self, client):
        resp = client.get("/status/github")

        assert resp.status_code == 200
        assert resp.json()["sourceType"] == "GITHUB"

    def test_single_status_unknown(self, client):
        resp = client.get("/status/unknown")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Unknown source type: unknown"}

    def test_single_status_without_config_row(self, client):
        assert client.get("/status/UPWORK").status_code == 404

    def test_recent_runs(self, client, run_logs):
        run_logs.logs.append(
            CollectorRunLog(
                source_type=SourceType.REDDIT,
                status=CollectionStatus.COMPLETED,
                items_collected=4,
                duplicates=1,
                duration_ms=900,
                id=1,
            )
        )

        resp = client.get("/runs/REDDIT", params={"limit": 5})

        assert resp.status_code == 200
        run = resp.json()[0]
        assert run["itemsCollected"] == 4
        assert run["durationMs"] == 900
        assert run["status"] == "COMPLETED"


class TestPipelineRoutes:
    def test_process(self, client):
        resp = client.post("/pipeline/process")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "COMPLETED"
        assert body["totalSignals"] == 1
        assert body["noProblem"] == 1

    def test_process_skipped(self, client, pipeline_service):
        pipeline_service.process_unprocessed_signals.return_value = PipelineResult(
            status="SKIPPED", error="OpenAI API key not configured"
        )

        resp = client.post("/pipeline/process")

        assert resp.status_code == 400
        assert resp.json() == {"error": "OpenAI API key not configured", "status": "SKIPPED"}

    def test_status(self, client, pipeline_service):
        pipeline_service.running = True
        assert client.get("/pipeline/status").json() == {"running": True}


class TestHealth:
    def test_healthy(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["runningCollectors"] == []
        assert body["pipelineRunning"] is False
        assert resp.headers["X-Request-ID"]

    def test_database_down(self, client, database):
        database.health_check.return_value = False

        body = client.get("/health").json()

        assert body["status"] == "unhealthy"
        assert body["database"] == "unhealthy"

    def test_reports_running_collectors(self, client):
        client.post("/collect/REDDIT")
        assert client.get("/health").json()["runningCollectors"] == ["REDDIT"]

    def test_echoes_request_id(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"


class TestAuth:
    @pytest.fixture
    def secured_client(self, monkeypatch, collection_service, pipeline_service):
        monkeypatch.setattr(
            auth, "get_settings", lambda: Settings(_env_file=None, api_keys="key-1, key-2")
        )
        monkeypatch.setattr(app_module, "lifespan", _no_lifespan)
        app = app_module.create_app()
        app.dependency_overrides[get_collection_service] = lambda: collection_service
        app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service
        with TestClient(app) as client:
            yield client

    def test_missing_key(self, secured_client):
        assert secured_client.get("/status").status_code == 401

    def test_invalid_key(self, secured_client):
        resp = secured_client.get("/status", headers={"X-API-KEY": "wrong"})
        assert resp.status_code == 401

    def test_valid_key(self, secured_client):
        resp = secured_client.get("/status", headers={"X-API-KEY": "key-2"})
        assert resp.status_code == 200


@asynccontextmanager
async def _no_lifespan(app):
    yield
