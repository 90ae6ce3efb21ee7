"""
DPGTF scoring for brand-new vault entries.

Each dimension has its own ceiling: demand 25, pain 25, gap 20,
timing 15, feasibility 15. Scores from the model are clamped into
[0, ceiling] and the overall score is the sum of the five stored values.
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from pydantic import ValidationError

from problem_vault.llm.client import LLMClient, extract_json_block
from problem_vault.llm.prompts import SCORING_SYSTEM_PROMPT, SCORING_USER_TEMPLATE
from problem_vault.observability.metrics import get_metrics
from problem_vault.pipeline.schemas import DimensionScore, DpgtfScores, VaultEntry

logger = logging.getLogger(__name__)

DIMENSION_MAX: dict[str, int] = {
    "demand": 25,
    "pain": 25,
    "gap": 20,
    "timing": 15,
    "feasibility": 15,
}

_CENTS = Decimal("0.01")


def clamp_score(value: float, maximum: int) -> Decimal:
    """Clamp into [0, maximum]; NaN and infinities count as 0."""
    value = float(value)
    if not math.isfinite(value):
        value = 0.0
    clamped = min(max(value, 0.0), float(maximum))
    return Decimal(str(clamped)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def clamp_scores(scores: DpgtfScores) -> DpgtfScores:
    """Copy of ``scores`` with every dimension clamped to its ceiling."""
    return DpgtfScores(
        **{
            name: DimensionScore(
                score=float(clamp_score(getattr(scores, name).score, maximum)),
                rationale=getattr(scores, name).rationale,
            )
            for name, maximum in DIMENSION_MAX.items()
        }
    )


def apply_scores(entry: VaultEntry, scores: DpgtfScores) -> None:
    entry.score_demand = clamp_score(scores.demand.score, DIMENSION_MAX["demand"])
    entry.score_pain = clamp_score(scores.pain.score, DIMENSION_MAX["pain"])
    entry.score_gap = clamp_score(scores.gap.score, DIMENSION_MAX["gap"])
    entry.score_timing = clamp_score(scores.timing.score, DIMENSION_MAX["timing"])
    entry.score_feasibility = clamp_score(
        scores.feasibility.score, DIMENSION_MAX["feasibility"]
    )
    entry.overall_score = (
        entry.score_demand
        + entry.score_pain
        + entry.score_gap
        + entry.score_timing
        + entry.score_feasibility
    )


def parse_scores(reply: str) -> DpgtfScores | None:
    try:
        return DpgtfScores.model_validate_json(extract_json_block(reply, opener="{"))
    except (ValidationError, ValueError) as e:
        logger.warning(f"Unparseable scoring reply: {e}")
        return None


class VaultScoringService:
    """Scores new entries with GPT. Unscored entries are still persisted."""

    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    async def score(self, entry: VaultEntry) -> DpgtfScores | None:
        """
        Score ``entry`` in place.

        Returns:
            The clamped scores, or None when the entry stays unscored
        """
        if not self._llm.openai_configured:
            logger.warning(f"OpenAI not configured, skipping scoring for {entry.title!r}")
            return None

        config = self._llm.config
        user_message = SCORING_USER_TEMPLATE.format(
            title=entry.title,
            description=entry.description,
            industry=entry.industry or "Unknown",
            target_customer=entry.target_customer or "Unknown",
            problem_type=entry.problem_type or "Unknown",
            source_count=entry.source_count,
        )
        try:
            reply = await self._llm.chat(
                SCORING_SYSTEM_PROMPT,
                user_message,
                model=config.scoring_model,
                max_tokens=config.scoring_max_tokens,
                json_mode=True,
            )
        except Exception as e:
            get_metrics().record_llm_error("openai", "score")
            logger.warning(f"Scoring failed for {entry.title!r}: {e}")
            return None

        scores = parse_scores(reply)
        if scores is None:
            return None

        scores = clamp_scores(scores)
        apply_scores(entry, scores)
        logger.info(f"Scored {entry.title!r}: overall={entry.overall_score}")
        return scores
