"""
asyncpg pool for the signal store, the vault and the run configs.

Every pooled connection decodes ``jsonb`` into Python objects, and the
pgvector extension is created once before the pool opens so vault
embeddings can be stored as ``vector`` columns.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from problem_vault.config.settings import get_settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "problem-vault"
COMMAND_TIMEOUT_SECONDS = 60


async def _register_codecs(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class Database:
    """
    Owns the connection pool; repositories only see this object.

    ``connect`` is safe to call twice. Queries made before it raise
    ``RuntimeError`` instead of opening connections lazily.
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        settings = get_settings()
        self.dsn = database_url or str(settings.database_url)
        self.pool_bounds = (
            min_size or settings.db_pool_min_size,
            max_size or settings.db_pool_max_size,
        )
        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        if self.connected:
            return

        low, high = self.pool_bounds
        try:
            await self._ensure_vector_extension()
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=low,
                max_size=high,
                command_timeout=COMMAND_TIMEOUT_SECONDS,
                server_settings={"application_name": APPLICATION_NAME},
                init=_register_codecs,
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Could not open database pool: {e}")
            raise

        logger.info(f"Database pool open ({low}-{high} connections)")

    async def _ensure_vector_extension(self) -> None:
        conn = await asyncpg.connect(self.dsn)
        try:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        finally:
            await conn.close()

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection whose statements commit or roll back together."""
        async with self.pool.acquire() as conn, conn.transaction():
            yield conn

    async def _run(self, method: str, query: str, args: tuple[Any, ...]) -> Any:
        async with self.pool.acquire() as conn:
            return await getattr(conn, method)(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        return await self._run("execute", query, args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._run("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._run("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._run("fetchval", query, args)

    async def health_check(self) -> bool:
        try:
            return await self.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False


_shared: Database | None = None


async def get_database() -> Database:
    """Return the process-wide Database, connecting it on first use."""
    global _shared
    if _shared is None:
        database = Database()
        await database.connect()
        _shared = database
    return _shared


async def close_database() -> None:
    global _shared
    if _shared is not None:
        database, _shared = _shared, None
        await database.close()
