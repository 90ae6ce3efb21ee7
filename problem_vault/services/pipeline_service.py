"""
Signal pipeline service.

Drains unprocessed signals oldest first through extraction, embedding,
deduplication and scoring, persisting each resulting vault entry. One
bad signal is recorded on the signal row and never aborts the batch.
"""

import time

import structlog

from problem_vault.collectors.cancellation import CancellationToken
from problem_vault.collectors.repository import SignalRepository
from problem_vault.collectors.schemas import Signal
from problem_vault.observability.metrics import get_metrics
from problem_vault.pipeline.config import PipelineConfig
from problem_vault.pipeline.deduplicator import ProblemDeduplicator
from problem_vault.pipeline.embedding import EmbeddingService
from problem_vault.pipeline.extractor import LlmProblemExtractor
from problem_vault.pipeline.repository import VaultRepository
from problem_vault.pipeline.schemas import DeduplicationResult, PipelineResult
from problem_vault.pipeline.scoring import VaultScoringService

logger = structlog.get_logger(__name__)

STATUS_COMPLETED = "COMPLETED"
STATUS_SKIPPED = "SKIPPED"
STATUS_ALREADY_RUNNING = "ALREADY_RUNNING"


class SignalPipelineService:
    """
    Single-flight pipeline over the signal store.

    Usage:
        service = SignalPipelineService(signals, vault, extractor, embeddings, deduplicator, scoring)
        result = await service.process_unprocessed_signals()
        print(result.to_dict())
    """

    def __init__(
        self,
        signals: SignalRepository,
        vault: VaultRepository,
        extractor: LlmProblemExtractor,
        embeddings: EmbeddingService,
        deduplicator: ProblemDeduplicator,
        scoring: VaultScoringService,
        config: PipelineConfig | None = None,
    ):
        self._signals = signals
        self._vault = vault
        self._extractor = extractor
        self._embeddings = embeddings
        self._deduplicator = deduplicator
        self._scoring = scoring
        self._config = config or PipelineConfig()
        self._metrics = get_metrics()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def process_unprocessed_signals(
        self,
        token: CancellationToken | None = None,
    ) -> PipelineResult:
        """
        Process every unprocessed signal.

        Returns:
            PipelineResult with aggregate counts, or with ``error`` set and
            status SKIPPED / ALREADY_RUNNING when the run did not start
        """
        if not self._extractor.is_configured:
            return PipelineResult(status=STATUS_SKIPPED, error="OpenAI API key not configured")

        # No await between the check and the set, so this is atomic on the loop.
        if self._running:
            return PipelineResult(status=STATUS_ALREADY_RUNNING, error="Pipeline already running")
        self._running = True

        start = time.monotonic()
        result = PipelineResult(status=STATUS_COMPLETED)
        try:
            signals = await self._signals.get_unprocessed(self._config.batch_limit)
            result.total_signals = len(signals)
            logger.info("Pipeline started", unprocessed=len(signals))

            for signal in signals:
                if token is not None and token.cancelled:
                    logger.info("Pipeline cancelled", processed=result.processed)
                    break

                try:
                    dedup = await self._process_signal(signal)
                except Exception as e:
                    logger.error(
                        "Failed to process signal",
                        signal_id=signal.id,
                        error=str(e),
                    )
                    await self._signals.mark_processed(signal.id, error=str(e) or type(e).__name__)
                    result.errors += 1
                    self._metrics.record_pipeline_outcome("error")
                    continue

                result.processed += 1
                if dedup is None:
                    result.no_problem += 1
                    self._metrics.record_pipeline_outcome("no_problem")
                    continue

                result.problems_extracted += 1
                if dedup.is_new:
                    result.new_problems += 1
                    self._metrics.record_pipeline_outcome("new")
                else:
                    result.duplicates_merged += 1
                    self._metrics.record_pipeline_outcome("merged")
        finally:
            self._running = False

        result.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Pipeline completed",
            duration_ms=result.duration_ms,
            processed=result.processed,
            problems_extracted=result.problems_extracted,
            new_problems=result.new_problems,
            duplicates_merged=result.duplicates_merged,
            errors=result.errors,
        )
        return result

    async def _process_signal(self, signal: Signal) -> DeduplicationResult | None:
        """Run one signal through every stage. Returns None when it holds no problem."""
        problem = await self._extractor.extract(signal)
        if not problem.is_valid():
            await self._signals.mark_processed(signal.id)
            return None

        embedding = await self._embeddings.embed(problem.title, problem.description)
        dedup = await self._deduplicator.deduplicate(problem, embedding, signal)

        # Merged entries keep their original scores.
        if dedup.is_new:
            await self._scoring.score(dedup.entry)

        await self._vault.save(dedup.entry)
        await self._signals.mark_processed(signal.id)
        return dedup
