"""Data models for collection runs, targets and raw signals."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceType(str, Enum):
    """External sources a collector exists for."""

    APP_STORE = "APP_STORE"
    GITHUB = "GITHUB"
    HACKER_NEWS = "HACKER_NEWS"
    REDDIT = "REDDIT"
    PRODUCT_HUNT = "PRODUCT_HUNT"
    UPWORK = "UPWORK"
    LLM_BRAINSTORM = "LLM_BRAINSTORM"

    @classmethod
    def parse(cls, value: str) -> "SourceType | None":
        """Case-insensitive lookup; None for unknown names."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class RunStatus(str, Enum):
    """Persisted run state of a source. RUNNING doubles as the single-flight lock."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FAILED = "FAILED"


class CollectionStatus(str, Enum):
    """Outcome of one collector run."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Target types understood by the collectors. Anything else falls back to
# the collector's generic search behaviour.
TARGET_APP_ID = "APP_ID"
TARGET_CATEGORY = "CATEGORY"
TARGET_LABEL = "LABEL"
TARGET_TOPIC = "TOPIC"
TARGET_KEYWORD = "KEYWORD"
TARGET_SUBREDDIT = "SUBREDDIT"
TARGET_SEARCH = "SEARCH"
TARGET_INDUSTRY = "INDUSTRY"


@dataclass
class CollectorTarget:
    """What to collect for a source: a subreddit, a GitHub label, an app id, an industry.

    Unique per (source_type, target_type, target_value). Managed out-of-band
    and only read by collectors.
    """

    source_type: SourceType
    target_type: str
    target_value: str
    enabled: bool = True
    priority: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class CollectorRunConfig:
    """Mutable per-source state. Exactly one row exists per source type."""

    source_type: SourceType
    enabled: bool = True
    status: RunStatus = RunStatus.IDLE
    last_run_at: datetime | None = None
    last_cursor: str | None = None
    last_error: str | None = None
    items_last_run: int = 0
    max_items: int = 100
    settings: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_status(self) -> dict[str, Any]:
        """Shape returned by the status endpoints."""
        return {
            "sourceType": self.source_type.value,
            "enabled": self.enabled,
            "status": self.status.value,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else "",
            "itemsLastRun": self.items_last_run,
            "lastError": self.last_error or "",
        }


@dataclass
class Signal:
    """One raw ingested record, keyed by (source_type, source_id).

    ``raw_text`` holds the flat JSON payload built by the collector.
    Only the pipeline mutates ``processed``, ``processed_at`` and ``error``.
    """

    source_type: SourceType
    source_id: str
    raw_text: str
    processed: bool = False
    processed_at: datetime | None = None
    error: str | None = None
    created_at: datetime | None = None
    id: int | None = None

    @property
    def payload(self) -> dict[str, Any]:
        try:
            value = json.loads(self.raw_text)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}


@dataclass
class CollectionResult:
    """What a collector reports back to the orchestrator."""

    status: CollectionStatus
    items_collected: int = 0
    duplicates_skipped: int = 0
    last_cursor: str | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass
class CollectorRunLog:
    """Immutable record of one finished run."""

    source_type: SourceType
    status: CollectionStatus
    items_collected: int = 0
    duplicates: int = 0
    new_problems: int = 0
    duration_ms: int = 0
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    id: int | None = None
