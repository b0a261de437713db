"""
PostgreSQL persistence layer for posts.
"""

import asyncio
import json
from typing import Optional

import asyncpg

from shared.errors import DuplicateRecordError, StoreError
from shared.logging import get_logger
from ..ingestion.models import NewPostRecord


# asyncio.TimeoutError is not an OSError before Python 3.11
_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PostgreSQLPostStore:
    """Direct PostgreSQL access to the ``posts`` table."""

    def __init__(self, dsn: str, *, ensure_schema: bool = False, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.ensure_schema = ensure_schema
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("ingest.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )

            if self.ensure_schema:
                await self.create_tables()

            self.logger.info("PostgreSQL persistence started")

        except _DB_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreError("Failed to start PostgreSQL persistence", details={"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def create_tables(self):
        """Create the posts table. The unique index on source_id is what makes ingestion race-safe."""
        async with self._acquire() as conn:
            await conn.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS posts (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    source_id TEXT NOT NULL,
                    raw_text TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    meta JSONB NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS posts_source_id_key ON posts(source_id);
            """)

    async def find_by_source_id(self, source_id: str) -> Optional[str]:
        """Return the id of the post with this source id, if any."""
        try:
            async with self._acquire() as conn:
                record_id = await conn.fetchval("""
                    SELECT id FROM posts WHERE source_id = $1 LIMIT 1
                """, source_id)
        except _DB_ERRORS as e:
            self.logger.error("Error looking up post", source_id=source_id, error=str(e))
            raise StoreError("Lookup failed", details={"error": str(e)}) from e

        return str(record_id) if record_id is not None else None

    async def insert(self, record: NewPostRecord) -> str:
        """Insert the record and return its generated id."""
        row = record.to_row()
        try:
            async with self._acquire() as conn:
                record_id = await conn.fetchval("""
                    INSERT INTO posts (source_id, raw_text, user_id, status, meta)
                    VALUES ($1, $2, $3, $4, $5::jsonb)
                    RETURNING id
                """,
                    row["source_id"], row["raw_text"], row["user_id"], row["status"], json.dumps(row["meta"])
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(record.source_id, details={"constraint": e.constraint_name}) from e
        except _DB_ERRORS as e:
            self.logger.error("Error inserting post", source_id=record.source_id, error=str(e))
            raise StoreError("Insert failed", details={"error": str(e)}) from e

        if record_id is None:
            raise StoreError("Insert returned no data", details={"source_id": record.source_id})
        return str(record_id)

    def _acquire(self):
        if self.pool is None:
            raise StoreError("PostgreSQL persistence not started")
        return self.pool.acquire()
