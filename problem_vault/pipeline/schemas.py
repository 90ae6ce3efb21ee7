"""Data models for extraction results, vault entries and pipeline runs."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from problem_vault.collectors.schemas import SourceType

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 200


class ExtractedProblem(BaseModel):
    """Structured candidate problem returned by the extractor."""

    model_config = ConfigDict(extra="ignore")

    has_problem: bool = False
    title: str | None = None
    description: str | None = None
    problem_type: str | None = None
    industry: str | None = None
    target_customer: str | None = None
    pain_intensity: str | None = None
    monetization_potential: str | None = None
    monetization_model: str | None = None
    willingness_to_pay_signal: str | None = None
    key_quotes: list[str] = Field(default_factory=list)
    source_url: str | None = None

    @field_validator("key_quotes", mode="before")
    @classmethod
    def _quotes_default(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @classmethod
    def no_problem(cls) -> "ExtractedProblem":
        return cls(has_problem=False)

    def is_valid(self) -> bool:
        """A problem worth a vault write: titled, described and typed."""
        return (
            self.has_problem
            and self.title is not None
            and TITLE_MIN_LENGTH <= len(self.title) <= TITLE_MAX_LENGTH
            and bool(self.description and self.description.strip())
            and bool(self.problem_type and self.problem_type.strip())
        )


class DimensionScore(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: float = 0.0
    rationale: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _score_default(cls, value: Any) -> Any:
        return 0.0 if value is None else value


class DpgtfScores(BaseModel):
    """Raw scorer reply: demand, pain, gap, timing, feasibility."""

    model_config = ConfigDict(extra="ignore")

    demand: DimensionScore = Field(default_factory=DimensionScore)
    pain: DimensionScore = Field(default_factory=DimensionScore)
    gap: DimensionScore = Field(default_factory=DimensionScore)
    timing: DimensionScore = Field(default_factory=DimensionScore)
    feasibility: DimensionScore = Field(default_factory=DimensionScore)


@dataclass
class Evidence:
    """
    One supporting occurrence of a vault entry.

    Immutable once persisted. ``vault_entry_id`` is only the join column;
    the owning VaultEntry holds the evidence list.
    """

    source_type: SourceType
    raw_text: str
    collected_at: datetime
    source_url: str | None = None
    quote_text: str | None = None
    platform_score: int | None = None
    id: int | None = None
    vault_entry_id: int | None = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


@dataclass
class VaultEntry:
    """Canonical, deduplicated business problem with its evidence."""

    title: str
    description: str
    problem_type: str | None = None
    industry: str | None = None
    target_customer: str | None = None
    score_demand: Decimal | None = None
    score_pain: Decimal | None = None
    score_gap: Decimal | None = None
    score_timing: Decimal | None = None
    score_feasibility: Decimal | None = None
    overall_score: Decimal | None = None
    confidence: Decimal = Decimal("0.25")
    source_count: int = 1
    embedding: list[float] | None = None
    is_public: bool = False
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    evidence: list[Evidence] = field(default_factory=list)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_new(self) -> bool:
        return self.id is None

    @property
    def is_scored(self) -> bool:
        return self.overall_score is not None


@dataclass
class DeduplicationResult:
    entry: VaultEntry
    is_new: bool
    decision: str
    distance: float | None = None


@dataclass
class PipelineResult:
    """Aggregate counts of one pipeline run."""

    status: str = "COMPLETED"
    total_signals: int = 0
    processed: int = 0
    problems_extracted: int = 0
    new_problems: int = 0
    duplicates_merged: int = 0
    no_problem: int = 0
    errors: int = 0
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error, "status": self.status}
        return {
            "status": self.status,
            "totalSignals": self.total_signals,
            "processed": self.processed,
            "problemsExtracted": self.problems_extracted,
            "newProblems": self.new_problems,
            "duplicatesMerged": self.duplicates_merged,
            "noProblem": self.no_problem,
            "errors": self.errors,
            "durationMs": self.duration_ms,
        }
