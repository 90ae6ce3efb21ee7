"""
Prometheus metrics for collection runs and the signal pipeline.

Metrics are exposed by a standalone exposition server started from
``problem-vault serve`` when ``METRICS_ENABLED`` is set.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from problem_vault.config.settings import get_settings

logger = logging.getLogger(__name__)

DURATION_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)


class MetricsCollector:
    """
    Prometheus metrics owned by one process-wide instance.

    Usage:
        metrics = get_metrics()
        metrics.record_collection("REDDIT", "COMPLETED", items=12, duplicates=3, duration=4.2)
    """

    def __init__(self):
        self.signals_collected = Counter(
            "problem_vault_signals_collected_total",
            "Signals persisted by collectors",
            ["source_type"],
        )

        self.duplicates_skipped = Counter(
            "problem_vault_duplicates_skipped_total",
            "Upstream items skipped because the signal already existed",
            ["source_type"],
        )

        self.collection_runs = Counter(
            "problem_vault_collection_runs_total",
            "Finished collection runs",
            ["source_type", "status"],
        )

        self.collection_duration = Histogram(
            "problem_vault_collection_duration_seconds",
            "Wall time of a collection run",
            ["source_type"],
            buckets=DURATION_BUCKETS,
        )

        self.pipeline_signals = Counter(
            "problem_vault_pipeline_signals_total",
            "Signals handled by the pipeline",
            ["outcome"],  # extracted, no_problem, error
        )

        self.vault_decisions = Counter(
            "problem_vault_vault_decisions_total",
            "Deduplication decisions",
            ["decision"],  # new, merged, borderline_merged, borderline_new
        )

        self.llm_errors = Counter(
            "problem_vault_llm_errors_total",
            "LLM provider calls that failed or were rejected by a circuit breaker",
            ["provider", "operation"],
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """Start the Prometheus exposition server once."""
        if self._server_started:
            return
        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        self._server_started = True
        logger.info(f"Metrics server started on port {port}")

    def record_collection(
        self,
        source_type: str,
        status: str,
        items: int,
        duplicates: int,
        duration: float,
    ) -> None:
        self.collection_runs.labels(source_type=source_type, status=status).inc()
        if items:
            self.signals_collected.labels(source_type=source_type).inc(items)
        if duplicates:
            self.duplicates_skipped.labels(source_type=source_type).inc(duplicates)
        self.collection_duration.labels(source_type=source_type).observe(duration)

    def record_pipeline_outcome(self, outcome: str) -> None:
        self.pipeline_signals.labels(outcome=outcome).inc()

    def record_vault_decision(self, decision: str) -> None:
        self.vault_decisions.labels(decision=decision).inc()

    def record_llm_error(self, provider: str, operation: str) -> None:
        self.llm_errors.labels(provider=provider, operation=operation).inc()


_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
