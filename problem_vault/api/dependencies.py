"""
Dependency injection for FastAPI endpoints.
"""

from problem_vault.llm.client import LLMClient
from problem_vault.services.collection_service import CollectionService
from problem_vault.services.factory import (
    Repositories,
    build_collection_service,
    build_pipeline_service,
    build_repositories,
)
from problem_vault.services.pipeline_service import SignalPipelineService
from problem_vault.storage.database import Database, close_database
from problem_vault.storage.database import get_database as _connect_database

# Global service instances (initialized on first request)
_llm_client: LLMClient | None = None
_repositories: Repositories | None = None
_collection_service: CollectionService | None = None
_pipeline_service: SignalPipelineService | None = None


async def get_database() -> Database:
    return await _connect_database()


def get_llm_client() -> LLMClient:
    global _llm_client

    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def get_repositories() -> Repositories:
    global _repositories

    if _repositories is None:
        _repositories = build_repositories(await get_database(), get_llm_client())
    return _repositories


async def get_collection_service() -> CollectionService:
    """
    Get the collection service instance.

    The service owns the in-memory job map, so exactly one exists per process.
    """
    global _collection_service

    if _collection_service is None:
        _collection_service = build_collection_service(
            await get_repositories(), get_llm_client()
        )
    return _collection_service


async def get_pipeline_service() -> SignalPipelineService:
    """Get the pipeline service instance (holds the single-flight flag)."""
    global _pipeline_service

    if _pipeline_service is None:
        _pipeline_service = build_pipeline_service(
            await get_repositories(), get_llm_client()
        )
    return _pipeline_service


async def cleanup_dependencies() -> None:
    """Stop in-flight jobs and close global dependencies on shutdown."""
    global _llm_client, _repositories, _collection_service, _pipeline_service

    if _collection_service is not None:
        await _collection_service.shutdown()
        _collection_service = None

    _pipeline_service = None
    _repositories = None
    _llm_client = None

    await close_database()
