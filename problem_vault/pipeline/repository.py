"""Database repositories for the problem vault, its evidence and prompts.

Similarity search uses pgvector's cosine distance operator (``<=>``).
Vectors cross the wire in pgvector's text form (``[0.1,0.2,...]``).
"""

import json
import logging
from typing import Any

from problem_vault.collectors.schemas import SourceType
from problem_vault.pipeline.schemas import Evidence, VaultEntry
from problem_vault.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_VAULT_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS problem_vault (
    id                BIGSERIAL PRIMARY KEY,
    title             TEXT NOT NULL,
    description       TEXT NOT NULL,
    problem_type      TEXT,
    industry          TEXT,
    target_customer   TEXT,
    score_demand      NUMERIC(5, 2),
    score_pain        NUMERIC(5, 2),
    score_gap         NUMERIC(5, 2),
    score_timing      NUMERIC(5, 2),
    score_feasibility NUMERIC(5, 2),
    overall_score     NUMERIC(5, 2),
    confidence        NUMERIC(4, 2) NOT NULL DEFAULT 0.25,
    source_count      INTEGER NOT NULL DEFAULT 1,
    embedding         vector({dimensions}),
    is_public         BOOLEAN NOT NULL DEFAULT FALSE,
    first_seen_at     TIMESTAMPTZ NOT NULL,
    last_seen_at      TIMESTAMPTZ NOT NULL,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_problem_vault_embedding
    ON problem_vault USING hnsw (embedding vector_cosine_ops);

CREATE TABLE IF NOT EXISTS problem_evidence (
    id               BIGSERIAL PRIMARY KEY,
    problem_vault_id BIGINT NOT NULL REFERENCES problem_vault(id) ON DELETE CASCADE,
    source_type      TEXT NOT NULL,
    source_url       TEXT,
    raw_text         TEXT,
    quote_text       TEXT,
    platform_score   INTEGER,
    collected_at     TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_problem_evidence_entry
    ON problem_evidence(problem_vault_id, collected_at);
"""

_CREATE_PROMPT_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS llm_prompt (
    id            BIGSERIAL PRIMARY KEY,
    prompt_name   TEXT NOT NULL UNIQUE,
    system_prompt TEXT NOT NULL,
    user_template TEXT,
    model         TEXT,
    active        BOOLEAN NOT NULL DEFAULT TRUE,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_ENTRY_COLUMNS = """
    id, title, description, problem_type, industry, target_customer,
    score_demand, score_pain, score_gap, score_timing, score_feasibility,
    overall_score, confidence, source_count, embedding::text AS embedding,
    is_public, first_seen_at, last_seen_at, created_at, updated_at
"""

_INSERT_ENTRY_SQL = """
INSERT INTO problem_vault (
    title, description, problem_type, industry, target_customer,
    score_demand, score_pain, score_gap, score_timing, score_feasibility,
    overall_score, confidence, source_count, embedding, is_public,
    first_seen_at, last_seen_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14::vector, $15, $16, $17)
RETURNING id, created_at, updated_at
"""

# Embeddings are never rewritten once set.
_UPDATE_ENTRY_SQL = """
UPDATE problem_vault
SET source_count = $2,
    confidence = $3,
    last_seen_at = $4,
    score_demand = $5,
    score_pain = $6,
    score_gap = $7,
    score_timing = $8,
    score_feasibility = $9,
    overall_score = $10,
    updated_at = NOW()
WHERE id = $1
RETURNING updated_at
"""

_INSERT_EVIDENCE_SQL = """
INSERT INTO problem_evidence (
    problem_vault_id, source_type, source_url, raw_text, quote_text,
    platform_score, collected_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING id
"""


def vector_literal(embedding: list[float]) -> str:
    return "[" + ",".join(str(float(value)) for value in embedding) + "]"


def _parse_vector(value: Any) -> list[float] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [float(v) for v in json.loads(value)]
    return [float(v) for v in value]


def _record_to_evidence(record) -> Evidence:
    return Evidence(
        id=record["id"],
        vault_entry_id=record["problem_vault_id"],
        source_type=SourceType(record["source_type"]),
        source_url=record["source_url"],
        raw_text=record["raw_text"],
        quote_text=record["quote_text"],
        platform_score=record["platform_score"],
        collected_at=record["collected_at"],
    )


def _record_to_entry(record, evidence: list[Evidence] | None = None) -> VaultEntry:
    return VaultEntry(
        id=record["id"],
        title=record["title"],
        description=record["description"],
        problem_type=record["problem_type"],
        industry=record["industry"],
        target_customer=record["target_customer"],
        score_demand=record["score_demand"],
        score_pain=record["score_pain"],
        score_gap=record["score_gap"],
        score_timing=record["score_timing"],
        score_feasibility=record["score_feasibility"],
        overall_score=record["overall_score"],
        confidence=record["confidence"],
        source_count=record["source_count"],
        embedding=_parse_vector(record["embedding"]),
        is_public=record["is_public"],
        first_seen_at=record["first_seen_at"],
        last_seen_at=record["last_seen_at"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
        evidence=evidence or [],
    )


class VaultRepository:
    """Persistence and nearest-neighbour search for vault entries."""

    def __init__(self, database: Database, dimensions: int = 1536) -> None:
        self._db = database
        self._dimensions = dimensions

    async def create_tables(self) -> None:
        await self._db.execute(
            _CREATE_VAULT_TABLES_SQL.format(dimensions=self._dimensions)
        )
        logger.info("problem_vault and problem_evidence tables ensured")

    async def find_similar(
        self,
        embedding: list[float],
        max_distance: float,
        limit: int,
    ) -> list[tuple[VaultEntry, float]]:
        """Nearest entries strictly within ``max_distance``, closest first."""
        rows = await self._db.fetch(
            f"""
            SELECT {_ENTRY_COLUMNS}, embedding <=> $1::vector AS distance
            FROM problem_vault
            WHERE embedding IS NOT NULL
              AND embedding <=> $1::vector < $2
            ORDER BY embedding <=> $1::vector
            LIMIT $3
            """,
            vector_literal(embedding),
            max_distance,
            limit,
        )
        if not rows:
            return []

        evidence = await self._evidence_for([row["id"] for row in rows])
        return [
            (_record_to_entry(row, evidence.get(row["id"], [])), float(row["distance"]))
            for row in rows
        ]

    async def distance_to(self, entry_id: int, embedding: list[float]) -> float | None:
        """Exact cosine distance between one entry and a vector."""
        value = await self._db.fetchval(
            """
            SELECT embedding <=> $2::vector
            FROM problem_vault
            WHERE id = $1 AND embedding IS NOT NULL
            """,
            entry_id,
            vector_literal(embedding),
        )
        return float(value) if value is not None else None

    async def get(self, entry_id: int) -> VaultEntry | None:
        row = await self._db.fetchrow(
            f"SELECT {_ENTRY_COLUMNS} FROM problem_vault WHERE id = $1",
            entry_id,
        )
        if row is None:
            return None
        evidence = await self._evidence_for([entry_id])
        return _record_to_entry(row, evidence.get(entry_id, []))

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM problem_vault")

    async def save(self, entry: VaultEntry) -> VaultEntry:
        """
        Insert a new entry or update a merged one, then append any
        evidence that has not been written yet. One transaction.
        """
        async with self._db.transaction() as conn:
            if entry.is_new:
                row = await conn.fetchrow(
                    _INSERT_ENTRY_SQL,
                    entry.title,
                    entry.description,
                    entry.problem_type,
                    entry.industry,
                    entry.target_customer,
                    entry.score_demand,
                    entry.score_pain,
                    entry.score_gap,
                    entry.score_timing,
                    entry.score_feasibility,
                    entry.overall_score,
                    entry.confidence,
                    entry.source_count,
                    vector_literal(entry.embedding) if entry.embedding else None,
                    entry.is_public,
                    entry.first_seen_at,
                    entry.last_seen_at,
                )
                entry.id = row["id"]
                entry.created_at = row["created_at"]
                entry.updated_at = row["updated_at"]
            else:
                entry.updated_at = await conn.fetchval(
                    _UPDATE_ENTRY_SQL,
                    entry.id,
                    entry.source_count,
                    entry.confidence,
                    entry.last_seen_at,
                    entry.score_demand,
                    entry.score_pain,
                    entry.score_gap,
                    entry.score_timing,
                    entry.score_feasibility,
                    entry.overall_score,
                )

            for item in entry.evidence:
                if item.is_persisted:
                    continue
                item.vault_entry_id = entry.id
                item.id = await conn.fetchval(
                    _INSERT_EVIDENCE_SQL,
                    entry.id,
                    item.source_type.value,
                    item.source_url,
                    item.raw_text,
                    item.quote_text,
                    item.platform_score,
                    item.collected_at,
                )

        return entry

    async def _evidence_for(self, entry_ids: list[int]) -> dict[int, list[Evidence]]:
        rows = await self._db.fetch(
            """
            SELECT * FROM problem_evidence
            WHERE problem_vault_id = ANY($1::bigint[])
            ORDER BY collected_at, id
            """,
            entry_ids,
        )
        grouped: dict[int, list[Evidence]] = {entry_id: [] for entry_id in entry_ids}
        for row in rows:
            grouped[row["problem_vault_id"]].append(_record_to_evidence(row))
        return grouped


class PromptRepository:
    """Named system prompts that override the built-in ones."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_PROMPT_TABLE_SQL)
        logger.info("llm_prompt table ensured")

    async def get_active_system_prompt(self, prompt_name: str) -> str | None:
        return await self._db.fetchval(
            """
            SELECT system_prompt FROM llm_prompt
            WHERE prompt_name = $1 AND active = TRUE
            """,
            prompt_name,
        )

    async def upsert(
        self,
        prompt_name: str,
        system_prompt: str,
        user_template: str | None = None,
        model: str | None = None,
        active: bool = True,
    ) -> None:
        await self._db.execute(
            """
            INSERT INTO llm_prompt (prompt_name, system_prompt, user_template, model, active)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (prompt_name) DO UPDATE SET
                system_prompt = EXCLUDED.system_prompt,
                user_template = EXCLUDED.user_template,
                model = EXCLUDED.model,
                active = EXCLUDED.active,
                updated_at = NOW()
            """,
            prompt_name,
            system_prompt,
            user_template,
            model,
            active,
        )
