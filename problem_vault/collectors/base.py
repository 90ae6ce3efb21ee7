"""
Base collector interface and the shared collection loop.

Each source collector implements ``_collect_identifier()``, which pages
through one resolved identifier and hands accepted items to ``_store()``.
The base class provides:
- Target loading and resolution
- Cancellation and ``max_items`` checks before every unit of work
- Signal dedup against the signal store
- Run bookkeeping and failure handling
"""

import hashlib
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from bs4 import BeautifulSoup

from problem_vault.collectors.cancellation import (
    CancellationToken,
    CollectionCancelledError,
)
from problem_vault.collectors.config import CollectorsConfig
from problem_vault.collectors.http_client import RetryConfig, RetryingHttpFetcher
from problem_vault.collectors.repository import SignalRepository, TargetRepository
from problem_vault.collectors.schemas import (
    CollectionResult,
    CollectionStatus,
    CollectorRunConfig,
    CollectorTarget,
    Signal,
    SourceType,
)

logger = logging.getLogger(__name__)


@dataclass
class CollectionRun:
    """Mutable state of one collector run."""

    source_type: SourceType
    max_items: int
    token: CancellationToken
    fetcher: RetryingHttpFetcher | None = None
    items_collected: int = 0
    duplicates_skipped: int = 0
    filtered: int = 0
    last_cursor: str | None = None
    start_time: float = field(default_factory=time.monotonic)

    @property
    def capacity_reached(self) -> bool:
        return self.items_collected >= self.max_items

    @property
    def should_stop(self) -> bool:
        return self.token.cancelled or self.capacity_reached

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)

    def result(self, status: CollectionStatus, error: str | None = None) -> CollectionResult:
        return CollectionResult(
            status=status,
            items_collected=self.items_collected,
            duplicates_skipped=self.duplicates_skipped,
            last_cursor=self.last_cursor,
            error=error,
            duration_ms=self.elapsed_ms,
        )


class BaseCollector(ABC):
    """
    Abstract base class for source collectors.

    Subclasses must implement:
        - source_type: SourceType handled by the collector
        - _collect_identifier(): fetch, filter and store items for one identifier

    Subclasses may override:
        - retry_config: per-source retry schedule
        - resolve_target(): map a target to fetchable identifiers
        - is_configured / skip_reason: skip the whole run without credentials
        - target_errors: exception types that skip one target instead of failing the run
    """

    retry_config: RetryConfig = RetryConfig()
    request_delay: float = 0.0
    target_delay: float = 0.0
    target_errors: tuple[type[Exception], ...] = ()

    def __init__(
        self,
        targets: TargetRepository,
        signals: SignalRepository,
        config: CollectorsConfig | None = None,
        request_delay: float | None = None,
        target_delay: float | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self._targets = targets
        self._signals = signals
        self._config = config or CollectorsConfig()
        if request_delay is not None:
            self.request_delay = request_delay
        if target_delay is not None:
            self.target_delay = target_delay
        if retry_config is not None:
            self.retry_config = retry_config

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        """Return the source this collector handles."""
        ...

    @property
    def name(self) -> str:
        return f"{self.source_type.value.lower()}_collector"

    @property
    def is_configured(self) -> bool:
        return True

    @property
    def skip_reason(self) -> str:
        return f"{self.source_type.value} is not configured"

    def resolve_target(self, target: CollectorTarget) -> list[str]:
        """Identifiers to fetch for a target. Pass-through by default."""
        return [target.target_value]

    @abstractmethod
    async def _collect_identifier(
        self,
        run: CollectionRun,
        target: CollectorTarget,
        identifier: str,
    ) -> None:
        """
        Fetch, filter and store items for one identifier.

        Implementations check ``run.should_stop`` before every page and
        item, and sleep only through ``run.token.sleep()``.
        """
        ...

    def _create_fetcher(self, token: CancellationToken) -> RetryingHttpFetcher:
        return RetryingHttpFetcher(
            self.retry_config,
            timeout=self._config.http_timeout,
            headers={"User-Agent": self._config.user_agent},
            token=token,
        )

    async def collect(
        self,
        config: CollectorRunConfig,
        token: CancellationToken | None = None,
    ) -> CollectionResult:
        """
        Run one collection for this source.

        Never raises: failures come back as a FAILED result with the partial
        counts, a stop request as CANCELLED with whatever was collected.
        """
        token = token or CancellationToken()
        run = CollectionRun(
            source_type=self.source_type,
            max_items=config.max_items,
            token=token,
            last_cursor=None,
        )

        if not self.is_configured:
            logger.warning(f"{self.name}: {self.skip_reason}, skipping run")
            return run.result(CollectionStatus.COMPLETED)

        logger.info(f"Starting {self.name} (max_items={config.max_items})")

        try:
            targets = await self._targets.get_enabled(self.source_type)
            if not targets:
                logger.info(f"{self.name}: no enabled targets")
                return run.result(CollectionStatus.COMPLETED)

            async with self._create_fetcher(token) as fetcher:
                run.fetcher = fetcher
                await self._collect_targets(run, targets)

        except CollectionCancelledError:
            logger.info(f"{self.name} cancelled during backoff")
            return self._finish(run, CollectionStatus.CANCELLED)
        except Exception as e:
            logger.error(f"{self.name} failed: {e}", exc_info=True)
            return self._finish(run, CollectionStatus.FAILED, error=str(e) or type(e).__name__)

        status = CollectionStatus.CANCELLED if token.cancelled else CollectionStatus.COMPLETED
        return self._finish(run, status)

    async def _collect_targets(self, run: CollectionRun, targets: list[CollectorTarget]) -> None:
        for index, target in enumerate(targets):
            if run.should_stop:
                break
            if index and self.target_delay and not await run.token.sleep(self.target_delay):
                break

            try:
                for identifier in self.resolve_target(target):
                    if run.should_stop:
                        break
                    await self._collect_identifier(run, target, identifier)
            except CollectionCancelledError:
                raise
            except self.target_errors as e:
                logger.warning(
                    f"{self.name}: skipping target {target.target_type}={target.target_value}: {e}"
                )

    def _finish(
        self,
        run: CollectionRun,
        status: CollectionStatus,
        error: str | None = None,
    ) -> CollectionResult:
        result = run.result(status, error=error)
        logger.info(
            f"{self.name} {status.value.lower()}: "
            f"collected={result.items_collected}, "
            f"duplicates={result.duplicates_skipped}, "
            f"filtered={run.filtered}, "
            f"elapsed={result.duration_ms}ms"
        )
        return result

    async def _store(self, run: CollectionRun, source_id: str, payload: dict[str, Any]) -> bool:
        """
        Persist one accepted item as a new signal.

        Returns:
            True if stored, False if (source_type, source_id) already existed
        """
        if await self._signals.exists(self.source_type, source_id):
            run.duplicates_skipped += 1
            return False

        signal = Signal(
            source_type=self.source_type,
            source_id=source_id,
            raw_text=json.dumps(payload, ensure_ascii=False, default=str),
        )
        if not await self._signals.insert(signal):
            # Lost a race with a concurrent insert of the same key.
            run.duplicates_skipped += 1
            return False

        run.items_collected += 1
        return True


# Common text utilities used across collectors

def clean_text(text: str | None) -> str:
    """Collapse whitespace and strip control characters."""
    if not text:
        return ""
    text = " ".join(text.split())
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return text.strip()


def html_to_text(html: str | None) -> str:
    """Strip markup from an HTML fragment and normalise whitespace."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    return clean_text(soup.get_text(separator=" "))


def stable_hash(value: str, length: int = 16) -> str:
    """
    Deterministic SHA256-based id, truncated to ``length`` hex characters.

    Unlike Python's built-in hash(), this is stable across process restarts.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]
