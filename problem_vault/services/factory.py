"""Builds the service graph from a connected database.

Shared by the API dependencies and the CLI so both run the same wiring.
"""

from dataclasses import dataclass

import structlog

from problem_vault.collectors import build_collectors
from problem_vault.collectors.config import CollectorsConfig
from problem_vault.collectors.repository import (
    RunConfigRepository,
    RunLogRepository,
    SignalRepository,
    TargetRepository,
)
from problem_vault.llm.client import LLMClient
from problem_vault.llm.config import LLMConfig
from problem_vault.pipeline.config import PipelineConfig
from problem_vault.pipeline.deduplicator import ProblemDeduplicator
from problem_vault.pipeline.embedding import EmbeddingService
from problem_vault.pipeline.extractor import LlmProblemExtractor
from problem_vault.pipeline.repository import PromptRepository, VaultRepository
from problem_vault.pipeline.scoring import VaultScoringService
from problem_vault.pipeline.verifier import LlmDuplicateVerifier
from problem_vault.services.collection_service import CollectionService
from problem_vault.services.pipeline_service import SignalPipelineService
from problem_vault.storage.database import Database

logger = structlog.get_logger(__name__)


@dataclass
class Repositories:
    targets: TargetRepository
    configs: RunConfigRepository
    run_logs: RunLogRepository
    signals: SignalRepository
    vault: VaultRepository
    prompts: PromptRepository


def build_repositories(database: Database, llm: LLMClient | None = None) -> Repositories:
    dimensions = (llm.config if llm else LLMConfig()).embedding_dimensions
    return Repositories(
        targets=TargetRepository(database),
        configs=RunConfigRepository(database),
        run_logs=RunLogRepository(database),
        signals=SignalRepository(database),
        vault=VaultRepository(database, dimensions=dimensions),
        prompts=PromptRepository(database),
    )


async def init_schema(
    repos: Repositories,
    collectors_config: CollectorsConfig | None = None,
) -> None:
    """Create every table and the default per-source config rows."""
    collectors_config = collectors_config or CollectorsConfig()
    await repos.targets.create_table()
    await repos.configs.create_table()
    await repos.run_logs.create_table()
    await repos.signals.create_table()
    await repos.vault.create_tables()
    await repos.prompts.create_table()
    await repos.configs.ensure_defaults(collectors_config.default_max_items)
    logger.info("Database schema ready")


def build_collection_service(
    repos: Repositories,
    llm: LLMClient,
    collectors_config: CollectorsConfig | None = None,
) -> CollectionService:
    collectors = build_collectors(repos.targets, repos.signals, collectors_config, llm=llm)
    return CollectionService(collectors, repos.configs, repos.run_logs)


def build_pipeline_service(
    repos: Repositories,
    llm: LLMClient,
    pipeline_config: PipelineConfig | None = None,
) -> SignalPipelineService:
    pipeline_config = pipeline_config or PipelineConfig()
    return SignalPipelineService(
        signals=repos.signals,
        vault=repos.vault,
        extractor=LlmProblemExtractor(llm, repos.prompts, pipeline_config),
        embeddings=EmbeddingService(llm, pipeline_config),
        deduplicator=ProblemDeduplicator(
            repos.vault, LlmDuplicateVerifier(llm), pipeline_config
        ),
        scoring=VaultScoringService(llm),
        config=pipeline_config,
    )
