"""Tests for the merge-or-create decision."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from problem_vault.collectors.schemas import Signal, SourceType
from problem_vault.pipeline.config import PipelineConfig
from problem_vault.pipeline.deduplicator import (
    ProblemDeduplicator,
    build_evidence,
    confidence_for,
    merge_into,
    platform_score,
)
from problem_vault.pipeline.schemas import Evidence, ExtractedProblem, VaultEntry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
EMBEDDING = [0.1, 0.2, 0.3]


def _problem(**overrides) -> ExtractedProblem:
    fields = {
        "has_problem": True,
        "title": "Clinics cannot reconcile insurance claims",
        "description": "Small clinics reconcile insurance claims in spreadsheets.",
        "problem_type": "workflow",
        "industry": "Healthcare",
        "key_quotes": ["we do this by hand", "  ", "every single week"],
    }
    fields.update(overrides)
    return ExtractedProblem(**fields)


def _signal(payload: dict | None = None) -> Signal:
    payload = payload or {"title": "claims hell", "score": 42, "url": "https://example.com/p/1"}
    return Signal(
        SourceType.REDDIT,
        "abc",
        json.dumps(payload),
        id=3,
        created_at=datetime(2026, 2, 28, tzinfo=timezone.utc),
    )


def _existing(source_count: int = 1) -> VaultEntry:
    return VaultEntry(
        id=11,
        title="Insurance claim reconciliation is manual",
        description="Clinics spend hours matching claims to payments.",
        confidence=confidence_for(source_count),
        source_count=source_count,
        embedding=EMBEDDING,
        first_seen_at=NOW,
        last_seen_at=NOW,
        evidence=[
            Evidence(SourceType.GITHUB, f"older {n}", NOW, id=n, vault_entry_id=11)
            for n in range(1, source_count + 1)
        ],
    )


@pytest.fixture
def vault() -> MagicMock:
    vault = MagicMock()
    vault.find_similar = AsyncMock(return_value=[])
    vault.distance_to = AsyncMock(return_value=None)
    return vault


@pytest.fixture
def verifier() -> MagicMock:
    verifier = MagicMock()
    verifier.is_duplicate = AsyncMock(return_value=False)
    return verifier


@pytest.fixture
def deduplicator(vault, verifier) -> ProblemDeduplicator:
    return ProblemDeduplicator(vault, verifier, PipelineConfig(_env_file=None))


@pytest.mark.parametrize(
    "count,expected",
    [
        (1, "0.25"),
        (2, "0.50"),
        (3, "0.75"),
        (4, "0.75"),
        (5, "0.90"),
        (12, "0.90"),
    ],
)
def test_confidence_steps(count, expected):
    assert confidence_for(count) == Decimal(expected)


def test_merge_into_fifth_source():
    entry = _existing(source_count=4)
    evidence = Evidence(SourceType.REDDIT, "new", NOW)
    later = datetime(2026, 3, 2, tzinfo=timezone.utc)

    merge_into(entry, evidence, later)

    assert entry.source_count == 5
    assert entry.confidence == Decimal("0.90")
    assert entry.last_seen_at == later
    assert entry.first_seen_at == NOW
    assert entry.evidence[-1] is evidence
    assert entry.source_count == len(entry.evidence)


def test_platform_score_picks_first_numeric_field():
    assert platform_score({"points": 17}) == 17
    assert platform_score({"rating": 2.0}) == 2
    assert platform_score({"score": True, "reactions": 5}) == 5
    assert platform_score({"title": "x"}) is None


def test_build_evidence_from_signal():
    evidence = build_evidence(_problem(), _signal(), NOW)

    assert evidence.source_type == SourceType.REDDIT
    assert evidence.source_url == "https://example.com/p/1"
    assert evidence.quote_text == "we do this by hand | every single week"
    assert evidence.platform_score == 42
    assert evidence.collected_at == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert evidence.raw_text == _signal().raw_text


def test_build_evidence_prefers_extracted_url_and_handles_no_quotes():
    problem = _problem(source_url="https://reddit.com/r/x/1", key_quotes=[])
    evidence = build_evidence(problem, _signal(), NOW)

    assert evidence.source_url == "https://reddit.com/r/x/1"
    assert evidence.quote_text is None


@pytest.mark.asyncio
async def test_no_embedding_creates_entry(deduplicator, vault):
    result = await deduplicator.deduplicate(_problem(), None, _signal())

    assert result.is_new
    assert result.decision == "new_no_embedding"
    assert result.entry.embedding is None
    vault.find_similar.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_candidates_creates_entry(deduplicator, vault):
    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert result.is_new
    assert result.decision == "new_no_match"
    entry = result.entry
    assert entry.title == "Clinics cannot reconcile insurance claims"
    assert entry.industry == "Healthcare"
    assert entry.source_count == 1
    assert entry.confidence == Decimal("0.25")
    assert entry.embedding == EMBEDDING
    assert entry.first_seen_at == entry.last_seen_at
    assert len(entry.evidence) == 1
    assert not entry.is_scored
    vault.find_similar.assert_awaited_once_with(EMBEDDING, max_distance=0.25, limit=5)


@pytest.mark.asyncio
async def test_definite_duplicate_merges_without_verifier(deduplicator, vault, verifier):
    existing = _existing(source_count=2)
    vault.find_similar.return_value = [(existing, 0.05)]
    vault.distance_to.return_value = 0.05

    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert not result.is_new
    assert result.decision == "merged"
    assert result.entry is existing
    assert existing.source_count == 3
    assert existing.confidence == Decimal("0.75")
    assert existing.source_count == len(existing.evidence)
    assert existing.embedding == EMBEDDING
    verifier.is_duplicate.assert_not_awaited()
    vault.distance_to.assert_awaited_once_with(11, EMBEDDING)


@pytest.mark.asyncio
async def test_borderline_verified_duplicate_merges(deduplicator, vault, verifier):
    existing = _existing()
    vault.find_similar.return_value = [(existing, 0.15)]
    vault.distance_to.return_value = 0.15
    verifier.is_duplicate.return_value = True

    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert not result.is_new
    assert result.decision == "borderline_merged"
    assert existing.source_count == 2
    assert existing.confidence == Decimal("0.50")
    verifier.is_duplicate.assert_awaited_once_with(
        "Clinics cannot reconcile insurance claims",
        "Small clinics reconcile insurance claims in spreadsheets.",
        "Insurance claim reconciliation is manual",
        "Clinics spend hours matching claims to payments.",
    )


@pytest.mark.asyncio
async def test_borderline_rejected_creates_entry(deduplicator, vault, verifier):
    existing = _existing()
    vault.find_similar.return_value = [(existing, 0.12)]
    vault.distance_to.return_value = 0.12

    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert result.is_new
    assert result.decision == "borderline_new"
    assert result.distance == 0.12
    assert existing.source_count == 1
    verifier.is_duplicate.assert_awaited_once()


@pytest.mark.asyncio
async def test_threshold_boundary_goes_to_verifier(deduplicator, vault, verifier):
    vault.find_similar.return_value = [(_existing(), 0.10)]
    vault.distance_to.return_value = 0.10

    await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    verifier.is_duplicate.assert_awaited_once()


@pytest.mark.asyncio
async def test_distant_candidate_creates_entry(deduplicator, vault, verifier):
    vault.find_similar.return_value = [(_existing(), 0.22)]
    vault.distance_to.return_value = 0.20

    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert result.is_new
    assert result.decision == "new_distant"
    verifier.is_duplicate.assert_not_awaited()


@pytest.mark.asyncio
async def test_only_closest_candidate_is_considered(deduplicator, vault, verifier):
    closest = _existing()
    other = _existing()
    other.id = 12
    vault.find_similar.return_value = [(closest, 0.15), (other, 0.16)]
    vault.distance_to.return_value = 0.15

    result = await deduplicator.deduplicate(_problem(), EMBEDDING, _signal())

    assert result.is_new
    assert verifier.is_duplicate.await_count == 1
    vault.distance_to.assert_awaited_once_with(11, EMBEDDING)
