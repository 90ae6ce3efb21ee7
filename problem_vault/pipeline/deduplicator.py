"""
Deduplication engine: merge a candidate problem into the vault or add it.

Decision procedure for a candidate with embedding ``e``:

1. No embedding: always a new entry.
2. Query the ``search_limit`` nearest entries with distance below
   ``search_radius``. None: new entry.
3. Recompute the exact distance ``d`` to the closest one.
   - d < definite_duplicate_distance: merge.
   - d < borderline_distance: merge only if the verifier says "duplicate".
   - otherwise: new entry.

Only the closest candidate is ever considered for a merge.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from problem_vault.collectors.schemas import Signal
from problem_vault.observability.metrics import get_metrics
from problem_vault.pipeline.config import PipelineConfig
from problem_vault.pipeline.repository import VaultRepository
from problem_vault.pipeline.schemas import (
    DeduplicationResult,
    Evidence,
    ExtractedProblem,
    VaultEntry,
)
from problem_vault.pipeline.verifier import LlmDuplicateVerifier

logger = logging.getLogger(__name__)

INITIAL_CONFIDENCE = Decimal("0.25")

# Payload fields that carry the source's own engagement number.
_PLATFORM_SCORE_FIELDS = ("score", "points", "reactions", "votes_count", "rating")
_SOURCE_URL_FIELDS = ("source_url", "url", "link", "product_url")


def confidence_for(source_count: int) -> Decimal:
    """Step function: 1 → 0.25, 2 → 0.50, 3-4 → 0.75, 5+ → 0.90."""
    if source_count >= 5:
        return Decimal("0.90")
    if source_count >= 3:
        return Decimal("0.75")
    if source_count == 2:
        return Decimal("0.50")
    return INITIAL_CONFIDENCE


def platform_score(payload: dict[str, Any]) -> int | None:
    for name in _PLATFORM_SCORE_FIELDS:
        value = payload.get(name)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


def build_evidence(problem: ExtractedProblem, signal: Signal, now: datetime) -> Evidence:
    payload = signal.payload
    source_url = problem.source_url or next(
        (payload[name] for name in _SOURCE_URL_FIELDS if payload.get(name)), None
    )
    quotes = [quote for quote in problem.key_quotes if quote and quote.strip()]
    return Evidence(
        source_type=signal.source_type,
        source_url=source_url,
        raw_text=signal.raw_text,
        quote_text=" | ".join(quotes) if quotes else None,
        platform_score=platform_score(payload),
        collected_at=signal.created_at or now,
    )


def merge_into(entry: VaultEntry, evidence: Evidence, now: datetime) -> VaultEntry:
    entry.source_count += 1
    entry.confidence = confidence_for(entry.source_count)
    entry.last_seen_at = now
    entry.evidence.append(evidence)
    return entry


def new_entry(
    problem: ExtractedProblem,
    embedding: list[float] | None,
    evidence: Evidence,
    now: datetime,
) -> VaultEntry:
    return VaultEntry(
        title=problem.title or "",
        description=problem.description or "",
        problem_type=problem.problem_type,
        industry=problem.industry,
        target_customer=problem.target_customer,
        confidence=INITIAL_CONFIDENCE,
        source_count=1,
        embedding=embedding,
        first_seen_at=now,
        last_seen_at=now,
        evidence=[evidence],
    )


class ProblemDeduplicator:
    """Decides merge vs. new for each extracted problem."""

    def __init__(
        self,
        vault: VaultRepository,
        verifier: LlmDuplicateVerifier,
        config: PipelineConfig | None = None,
    ) -> None:
        self._vault = vault
        self._verifier = verifier
        self._config = config or PipelineConfig()

    async def deduplicate(
        self,
        problem: ExtractedProblem,
        embedding: list[float] | None,
        signal: Signal,
    ) -> DeduplicationResult:
        now = datetime.now(timezone.utc)
        evidence = build_evidence(problem, signal, now)

        if embedding is None:
            return self._create(problem, embedding, evidence, now, "new_no_embedding")

        candidates = await self._vault.find_similar(
            embedding,
            max_distance=self._config.search_radius,
            limit=self._config.search_limit,
        )
        if not candidates:
            return self._create(problem, embedding, evidence, now, "new_no_match")

        closest, _ = candidates[0]
        distance = await self._vault.distance_to(closest.id, embedding)
        if distance is None:
            return self._create(problem, embedding, evidence, now, "new_no_match")

        if distance < self._config.definite_duplicate_distance:
            logger.info(
                f"Definite duplicate of entry {closest.id} (distance={distance:.4f})"
            )
            return self._merge(closest, evidence, now, "merged", distance)

        if distance < self._config.borderline_distance:
            same = await self._verifier.is_duplicate(
                problem.title or "",
                problem.description or "",
                closest.title,
                closest.description,
            )
            logger.info(
                f"Borderline match with entry {closest.id} (distance={distance:.4f}), "
                f"verifier says {'duplicate' if same else 'different'}"
            )
            if same:
                return self._merge(closest, evidence, now, "borderline_merged", distance)
            return self._create(problem, embedding, evidence, now, "borderline_new", distance)

        return self._create(problem, embedding, evidence, now, "new_distant", distance)

    def _merge(
        self,
        entry: VaultEntry,
        evidence: Evidence,
        now: datetime,
        decision: str,
        distance: float,
    ) -> DeduplicationResult:
        get_metrics().record_vault_decision(decision)
        return DeduplicationResult(
            entry=merge_into(entry, evidence, now),
            is_new=False,
            decision=decision,
            distance=distance,
        )

    def _create(
        self,
        problem: ExtractedProblem,
        embedding: list[float] | None,
        evidence: Evidence,
        now: datetime,
        decision: str,
        distance: float | None = None,
    ) -> DeduplicationResult:
        get_metrics().record_vault_decision(decision)
        return DeduplicationResult(
            entry=new_entry(problem, embedding, evidence, now),
            is_new=True,
            decision=decision,
            distance=distance,
        )
