"""Source collectors and the table that dispatches to them by source type."""

from problem_vault.collectors.appstore import AppStoreCollector
from problem_vault.collectors.base import BaseCollector, CollectionRun
from problem_vault.collectors.brainstorm import LlmBrainstormCollector
from problem_vault.collectors.cancellation import CancellationToken, CollectionCancelledError
from problem_vault.collectors.config import CollectorsConfig
from problem_vault.collectors.github import GitHubIssueCollector
from problem_vault.collectors.hackernews import HackerNewsCollector
from problem_vault.collectors.producthunt import ProductHuntCollector
from problem_vault.collectors.reddit import RedditCollector
from problem_vault.collectors.repository import SignalRepository, TargetRepository
from problem_vault.collectors.schemas import (
    CollectionResult,
    CollectionStatus,
    CollectorRunConfig,
    CollectorTarget,
    RunStatus,
    Signal,
    SourceType,
)
from problem_vault.collectors.upwork import UpworkCollector
from problem_vault.llm.client import LLMClient


def build_collectors(
    targets: TargetRepository,
    signals: SignalRepository,
    config: CollectorsConfig | None = None,
    llm: LLMClient | None = None,
) -> dict[SourceType, BaseCollector]:
    """One collector per source type, built once at startup."""
    config = config or CollectorsConfig()
    collectors: list[BaseCollector] = [
        AppStoreCollector(targets, signals, config),
        GitHubIssueCollector(targets, signals, config),
        HackerNewsCollector(targets, signals, config),
        RedditCollector(targets, signals, config),
        ProductHuntCollector(targets, signals, config),
        UpworkCollector(targets, signals, config),
        LlmBrainstormCollector(targets, signals, config, llm=llm),
    ]
    return {collector.source_type: collector for collector in collectors}


__all__ = [
    "BaseCollector",
    "CancellationToken",
    "CollectionCancelledError",
    "CollectionResult",
    "CollectionRun",
    "CollectionStatus",
    "CollectorRunConfig",
    "CollectorTarget",
    "CollectorsConfig",
    "RunStatus",
    "Signal",
    "SourceType",
    "build_collectors",
]
