"""Database repositories for targets, run configs, run logs and signals."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from problem_vault.collectors.schemas import (
    CollectionStatus,
    CollectorRunConfig,
    CollectorRunLog,
    CollectorTarget,
    RunStatus,
    Signal,
    SourceType,
)
from problem_vault.storage.database import Database

logger = logging.getLogger(__name__)

DEFAULT_SEED_FILE = Path(__file__).parent / "data" / "seed_targets.json"

_CREATE_TARGET_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS collector_target (
    id           BIGSERIAL PRIMARY KEY,
    source_type  TEXT NOT NULL,
    target_type  TEXT NOT NULL,
    target_value TEXT NOT NULL,
    enabled      BOOLEAN NOT NULL DEFAULT TRUE,
    priority     INTEGER NOT NULL DEFAULT 0,
    metadata     JSONB NOT NULL DEFAULT '{}',
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (source_type, target_type, target_value)
);

CREATE INDEX IF NOT EXISTS idx_collector_target_source_enabled
    ON collector_target(source_type) WHERE enabled = TRUE;
"""

_CREATE_CONFIG_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS collector_config (
    id             BIGSERIAL PRIMARY KEY,
    source_type    TEXT NOT NULL UNIQUE,
    enabled        BOOLEAN NOT NULL DEFAULT TRUE,
    status         TEXT NOT NULL DEFAULT 'IDLE',
    last_run_at    TIMESTAMPTZ,
    last_cursor    TEXT,
    last_error     TEXT,
    items_last_run INTEGER NOT NULL DEFAULT 0,
    max_items      INTEGER NOT NULL DEFAULT 100,
    settings       JSONB NOT NULL DEFAULT '{}',
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_CREATE_SIGNAL_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS collector_signal (
    id           BIGSERIAL PRIMARY KEY,
    source_type  TEXT NOT NULL,
    source_id    TEXT NOT NULL,
    raw_text     TEXT NOT NULL,
    processed    BOOLEAN NOT NULL DEFAULT FALSE,
    processed_at TIMESTAMPTZ,
    error        TEXT,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (source_type, source_id)
);

CREATE INDEX IF NOT EXISTS idx_collector_signal_processed_created
    ON collector_signal(processed, created_at);
"""

_CREATE_RUN_LOG_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS collector_run_log (
    id              BIGSERIAL PRIMARY KEY,
    source_type     TEXT NOT NULL,
    status          TEXT NOT NULL,
    items_collected INTEGER NOT NULL DEFAULT 0,
    duplicates      INTEGER NOT NULL DEFAULT 0,
    new_problems    INTEGER NOT NULL DEFAULT 0,
    duration_ms     BIGINT NOT NULL DEFAULT 0,
    error           TEXT,
    started_at      TIMESTAMPTZ,
    completed_at    TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_collector_run_log_source_started
    ON collector_run_log(source_type, started_at DESC);
"""

_UPSERT_TARGET_SQL = """
INSERT INTO collector_target (source_type, target_type, target_value, enabled, priority, metadata)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (source_type, target_type, target_value) DO UPDATE SET
    enabled = EXCLUDED.enabled,
    priority = EXCLUDED.priority,
    metadata = EXCLUDED.metadata
"""

_INSERT_SIGNAL_SQL = """
INSERT INTO collector_signal (source_type, source_id, raw_text)
VALUES ($1, $2, $3)
ON CONFLICT (source_type, source_id) DO NOTHING
RETURNING id
"""

# Compare-and-set: only one caller can move a source out of a non-RUNNING state.
_ACQUIRE_SQL = """
UPDATE collector_config
SET status = 'RUNNING', last_error = NULL, updated_at = NOW()
WHERE source_type = $1 AND status <> 'RUNNING'
RETURNING *
"""

_SAVE_OUTCOME_SQL = """
UPDATE collector_config
SET status = $2,
    last_run_at = $3,
    items_last_run = $4,
    last_cursor = COALESCE($5, last_cursor),
    last_error = $6,
    updated_at = NOW()
WHERE source_type = $1
"""


def _record_to_target(record) -> CollectorTarget:
    return CollectorTarget(
        id=record["id"],
        source_type=SourceType(record["source_type"]),
        target_type=record["target_type"],
        target_value=record["target_value"],
        enabled=record["enabled"],
        priority=record["priority"],
        metadata=dict(record["metadata"]) if record["metadata"] else {},
        created_at=record["created_at"],
    )


def _record_to_config(record) -> CollectorRunConfig:
    return CollectorRunConfig(
        id=record["id"],
        source_type=SourceType(record["source_type"]),
        enabled=record["enabled"],
        status=RunStatus(record["status"]),
        last_run_at=record["last_run_at"],
        last_cursor=record["last_cursor"],
        last_error=record["last_error"],
        items_last_run=record["items_last_run"],
        max_items=record["max_items"],
        settings=dict(record["settings"]) if record["settings"] else {},
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


def _record_to_signal(record) -> Signal:
    return Signal(
        id=record["id"],
        source_type=SourceType(record["source_type"]),
        source_id=record["source_id"],
        raw_text=record["raw_text"],
        processed=record["processed"],
        processed_at=record["processed_at"],
        error=record["error"],
        created_at=record["created_at"],
    )


def _record_to_run_log(record) -> CollectorRunLog:
    return CollectorRunLog(
        id=record["id"],
        source_type=SourceType(record["source_type"]),
        status=CollectionStatus(record["status"]),
        items_collected=record["items_collected"],
        duplicates=record["duplicates"],
        new_problems=record["new_problems"],
        duration_ms=record["duration_ms"],
        error=record["error"],
        started_at=record["started_at"],
        completed_at=record["completed_at"],
    )


class TargetRepository:
    """Read access to collector targets, plus seeding."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TARGET_TABLE_SQL)
        logger.info("collector_target table ensured")

    async def get_enabled(self, source_type: SourceType) -> list[CollectorTarget]:
        """Enabled targets in a fixed order (priority first, then insertion)."""
        rows = await self._db.fetch(
            """
            SELECT * FROM collector_target
            WHERE source_type = $1 AND enabled = TRUE
            ORDER BY priority DESC, id
            """,
            source_type.value,
        )
        return [_record_to_target(row) for row in rows]

    async def upsert(self, target: CollectorTarget) -> None:
        await self._db.execute(
            _UPSERT_TARGET_SQL,
            target.source_type.value,
            target.target_type,
            target.target_value,
            target.enabled,
            target.priority,
            target.metadata,
        )

    async def seed_from_json(self, path: Path | None = None) -> int:
        """Upsert targets from a JSON file of ``{source_type: [target, ...]}``.

        Returns the number of targets written.
        """
        path = path or DEFAULT_SEED_FILE
        data = json.loads(path.read_text(encoding="utf-8"))

        count = 0
        for source_name, entries in data.items():
            source_type = SourceType.parse(source_name)
            if source_type is None:
                logger.warning("Skipping seed targets for unknown source %s", source_name)
                continue
            for entry in entries:
                await self.upsert(
                    CollectorTarget(
                        source_type=source_type,
                        target_type=entry["target_type"],
                        target_value=entry["target_value"],
                        enabled=entry.get("enabled", True),
                        priority=entry.get("priority", 0),
                        metadata=entry.get("metadata", {}),
                    )
                )
                count += 1

        logger.info("Seeded %d collector targets from %s", count, path.name)
        return count


class RunConfigRepository:
    """Per-source run state. The status column is the single-flight lock."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_CONFIG_TABLE_SQL)
        logger.info("collector_config table ensured")

    async def ensure_defaults(self, max_items: int = 100) -> None:
        """Insert one IDLE row per source type that has none yet."""
        for source_type in SourceType:
            await self._db.execute(
                """
                INSERT INTO collector_config (source_type, max_items)
                VALUES ($1, $2)
                ON CONFLICT (source_type) DO NOTHING
                """,
                source_type.value,
                max_items,
            )

    async def get(self, source_type: SourceType) -> CollectorRunConfig | None:
        row = await self._db.fetchrow(
            "SELECT * FROM collector_config WHERE source_type = $1",
            source_type.value,
        )
        return _record_to_config(row) if row else None

    async def list_all(self) -> list[CollectorRunConfig]:
        rows = await self._db.fetch("SELECT * FROM collector_config ORDER BY source_type")
        return [_record_to_config(row) for row in rows]

    async def try_acquire(self, source_type: SourceType) -> CollectorRunConfig | None:
        """Atomically move the source to RUNNING.

        Returns the updated config, or None if it was already RUNNING
        (or has no row).
        """
        row = await self._db.fetchrow(_ACQUIRE_SQL, source_type.value)
        return _record_to_config(row) if row else None

    async def save_outcome(
        self,
        source_type: SourceType,
        status: RunStatus,
        items_last_run: int,
        last_cursor: str | None,
        last_error: str | None,
        last_run_at: datetime | None = None,
    ) -> None:
        """Persist the result of a finished run. A None cursor keeps the previous one."""
        await self._db.execute(
            _SAVE_OUTCOME_SQL,
            source_type.value,
            status.value,
            last_run_at or datetime.now(timezone.utc),
            items_last_run,
            last_cursor,
            last_error,
        )

    async def set_status(
        self,
        source_type: SourceType,
        status: RunStatus,
        last_error: str | None = None,
    ) -> None:
        await self._db.execute(
            """
            UPDATE collector_config
            SET status = $2, last_error = $3, updated_at = NOW()
            WHERE source_type = $1
            """,
            source_type.value,
            status.value,
            last_error,
        )

    async def reset_stale(self, reason: str) -> list[SourceType]:
        """Move every RUNNING source back to IDLE. Returns the sources reset."""
        rows = await self._db.fetch(
            """
            UPDATE collector_config
            SET status = 'IDLE', last_error = $1, updated_at = NOW()
            WHERE status = 'RUNNING'
            RETURNING source_type
            """,
            reason,
        )
        return [SourceType(row["source_type"]) for row in rows]


class RunLogRepository:
    """Append-only history of collection runs."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_RUN_LOG_TABLE_SQL)
        logger.info("collector_run_log table ensured")

    async def insert(self, log: CollectorRunLog) -> int:
        return await self._db.fetchval(
            """
            INSERT INTO collector_run_log (
                source_type, status, items_collected, duplicates, new_problems,
                duration_ms, error, started_at, completed_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING id
            """,
            log.source_type.value,
            log.status.value,
            log.items_collected,
            log.duplicates,
            log.new_problems,
            log.duration_ms,
            log.error,
            log.started_at,
            log.completed_at,
        )

    async def recent(self, source_type: SourceType, limit: int = 20) -> list[CollectorRunLog]:
        rows = await self._db.fetch(
            """
            SELECT * FROM collector_run_log
            WHERE source_type = $1
            ORDER BY started_at DESC NULLS LAST, id DESC
            LIMIT $2
            """,
            source_type.value,
            limit,
        )
        return [_record_to_run_log(row) for row in rows]


class SignalRepository:
    """
    Append-only store of raw signals keyed by (source_type, source_id).

    ``exists`` is a best-effort pre-check; the unique constraint decides.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_SIGNAL_TABLE_SQL)
        logger.info("collector_signal table ensured")

    async def exists(self, source_type: SourceType, source_id: str) -> bool:
        return bool(
            await self._db.fetchval(
                """
                SELECT EXISTS(
                    SELECT 1 FROM collector_signal
                    WHERE source_type = $1 AND source_id = $2
                )
                """,
                source_type.value,
                source_id,
            )
        )

    async def insert(self, signal: Signal) -> bool:
        """Insert a signal. Returns False if the key already existed."""
        signal_id = await self._db.fetchval(
            _INSERT_SIGNAL_SQL,
            signal.source_type.value,
            signal.source_id,
            signal.raw_text,
        )
        if signal_id is None:
            return False
        signal.id = signal_id
        return True

    async def get_unprocessed(self, limit: int | None = None) -> list[Signal]:
        """Unprocessed signals, oldest first."""
        query = """
            SELECT * FROM collector_signal
            WHERE processed = FALSE
            ORDER BY created_at, id
        """
        if limit is not None:
            rows = await self._db.fetch(query + " LIMIT $1", limit)
        else:
            rows = await self._db.fetch(query)
        return [_record_to_signal(row) for row in rows]

    async def count_unprocessed(self) -> int:
        return await self._db.fetchval(
            "SELECT COUNT(*) FROM collector_signal WHERE processed = FALSE"
        )

    async def mark_processed(self, signal_id: int, error: str | None = None) -> None:
        await self._db.execute(
            """
            UPDATE collector_signal
            SET processed = TRUE, processed_at = NOW(), error = $2
            WHERE id = $1
            """,
            signal_id,
            error,
        )
