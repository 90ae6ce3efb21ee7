"""Pytest fixtures for problem-vault tests."""

from unittest.mock import AsyncMock

import pytest

from problem_vault.collectors.config import CollectorsConfig
from tests.fakes import FakeSignalRepository


@pytest.fixture
def signal_repo() -> FakeSignalRepository:
    return FakeSignalRepository()


@pytest.fixture
def collectors_config() -> CollectorsConfig:
    """Config with no credentials, independent of the environment."""
    return CollectorsConfig(
        _env_file=None,
        github_token=None,
        producthunt_token=None,
        user_agent="problem-vault-tests/1.0",
    )


@pytest.fixture
def mock_database() -> AsyncMock:
    """Mock Database instance matching the Database API."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="UPDATE 1")
    return db
