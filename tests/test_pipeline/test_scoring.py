"""Tests for DPGTF scoring."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from problem_vault.llm.config import LLMConfig
from problem_vault.pipeline.schemas import VaultEntry
from problem_vault.pipeline.scoring import (
    VaultScoringService,
    clamp_score,
    parse_scores,
)


def _reply(**scores) -> str:
    body = {
        name: {"score": value, "rationale": f"{name} rationale"}
        for name, value in scores.items()
    }
    return json.dumps(body)


def _entry() -> VaultEntry:
    return VaultEntry(
        title="Dentists double-book chairs",
        description="Scheduling tools ignore chair availability.",
        industry="Healthcare",
    )


@pytest.fixture
def llm() -> MagicMock:
    llm = MagicMock()
    llm.openai_configured = True
    llm.config = LLMConfig(_env_file=None)
    llm.chat = AsyncMock()
    return llm


@pytest.mark.parametrize(
    "value,maximum,expected",
    [
        (30, 25, "25.00"),
        (-4, 25, "0.00"),
        (12.345, 20, "12.35"),
        (15, 15, "15.00"),
        (7, 15, "7.00"),
    ],
)
def test_clamp_score(value, maximum, expected):
    assert clamp_score(value, maximum) == Decimal(expected)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_clamp_score_non_finite_is_zero(value):
    assert clamp_score(value, 25) == Decimal("0.00")


def test_parse_scores_with_fence_and_missing_dimension():
    reply = "```json\n" + _reply(demand=20, pain=18, gap=10, timing=9) + "\n```"
    scores = parse_scores(reply)

    assert scores.demand.score == 20
    assert scores.timing.rationale == "timing rationale"
    assert scores.feasibility.score == 0.0


def test_parse_scores_garbage():
    assert parse_scores("I would rate this highly") is None


@pytest.mark.asyncio
async def test_score_clamps_and_sums(llm):
    llm.chat.return_value = _reply(demand=30, pain=20, gap=25, timing=-2, feasibility=10.5)
    entry = _entry()

    scores = await VaultScoringService(llm).score(entry)

    assert entry.score_demand == Decimal("25.00")
    assert entry.score_pain == Decimal("20.00")
    assert entry.score_gap == Decimal("20.00")
    assert entry.score_timing == Decimal("0.00")
    assert entry.score_feasibility == Decimal("10.50")
    assert entry.overall_score == Decimal("75.50")
    assert entry.is_scored
    assert scores.demand.score == 25.0

    kwargs = llm.chat.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["json_mode"] is True
    user_message = llm.chat.await_args.args[1]
    assert "Dentists double-book chairs" in user_message
    assert "Healthcare" in user_message


@pytest.mark.asyncio
async def test_score_non_finite_reply_values(llm):
    llm.chat.return_value = (
        '{"demand": {"score": NaN}, "pain": {"score": 10}, '
        '"gap": {"score": Infinity}, "timing": {"score": -Infinity}, "feasibility": {"score": 5}}'
    )
    entry = _entry()

    await VaultScoringService(llm).score(entry)

    assert entry.score_demand == Decimal("0.00")
    assert entry.score_gap == Decimal("0.00")
    assert entry.score_timing == Decimal("0.00")
    assert entry.overall_score == Decimal("15.00")
    assert entry.overall_score == (
        entry.score_demand
        + entry.score_pain
        + entry.score_gap
        + entry.score_timing
        + entry.score_feasibility
    )


@pytest.mark.asyncio
async def test_score_leaves_entry_unscored_on_failure(llm):
    llm.chat.side_effect = RuntimeError("timeout")
    entry = _entry()

    assert await VaultScoringService(llm).score(entry) is None
    assert entry.overall_score is None
    assert not entry.is_scored


@pytest.mark.asyncio
async def test_score_leaves_entry_unscored_on_bad_reply(llm):
    llm.chat.return_value = "not json"
    entry = _entry()

    assert await VaultScoringService(llm).score(entry) is None
    assert entry.score_demand is None


@pytest.mark.asyncio
async def test_score_skipped_without_key(llm):
    llm.openai_configured = False

    assert await VaultScoringService(llm).score(_entry()) is None
    llm.chat.assert_not_awaited()
