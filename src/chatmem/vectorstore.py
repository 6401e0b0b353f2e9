"""pgvector-based durable store for chatmem.

Long-term memory records live in one PostgreSQL table with a pgvector
embedding column. Record ids are deterministic
(``{user_id}:{chat_id}:{turn_id}:{role}``), so upserting the same logical
message twice overwrites instead of duplicating.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

import asyncpg
from pgvector.asyncpg import register_vector

from chatmem.db import FilterBuilder
from chatmem.errors import CollaboratorError
from chatmem.models import LongTermMemoryRecord, VectorMatch

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_DIM = 1536
DEFAULT_TABLE = "chat_memories"
MAX_BATCH_SIZE = 100

_TABLE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


@runtime_checkable
class VectorStore(Protocol):
    """Contract the memory subsystem needs from a vector database."""

    async def upsert(self, records: list[LongTermMemoryRecord]) -> int: ...

    async def query(
        self,
        vector: list[float],
        metadata_filter: dict[str, Any] | None,
        top_k: int,
        threshold: float,
    ) -> list[VectorMatch]: ...

    async def delete(self, metadata_filter: dict[str, Any]) -> int: ...


class PgVectorStore:
    """PostgreSQL + pgvector implementation of VectorStore."""

    def __init__(
        self,
        database_url: str | None = None,
        table: str = DEFAULT_TABLE,
        embedding_dim: int = DEFAULT_EMBEDDING_DIM,
        pool_size: int = 10,
        batch_size: int = MAX_BATCH_SIZE,
    ):
        """Initialize the vector store.

        Args:
            database_url: PostgreSQL connection URL (defaults to CHATMEM_DATABASE_URL)
            table: Table holding the records
            embedding_dim: Embedding dimension of the vector column
            pool_size: Connection pool size
            batch_size: Records per upsert statement batch
        """
        self.database_url = database_url or os.getenv("CHATMEM_DATABASE_URL")
        if not self.database_url:
            raise ValueError(
                "Database URL required. Set CHATMEM_DATABASE_URL environment variable "
                "or pass database_url parameter."
            )
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table}")

        self.table = table
        self.embedding_dim = embedding_dim
        self.pool_size = pool_size
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Initialize the connection pool and make sure the schema exists."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                init=self._init_connection,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(self._schema_sql())
        except (asyncpg.PostgresError, OSError) as e:
            raise CollaboratorError("vector_store", f"connect failed: {e}") from e
        logger.info(f"PgVectorStore connected (table={self.table})")

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
        await register_vector(conn)

    def _schema_sql(self) -> str:
        t = self.table
        return f"""
            CREATE TABLE IF NOT EXISTS {t} (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL,
                turn_id TEXT,
                content TEXT NOT NULL,
                tags TEXT[] NOT NULL DEFAULT '{{}}',
                metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL,
                embedding vector({self.embedding_dim}) NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_{t}_user ON {t}(user_id);
            CREATE INDEX IF NOT EXISTS idx_{t}_user_chat ON {t}(user_id, chat_id);
            CREATE INDEX IF NOT EXISTS idx_{t}_embedding
                ON {t} USING hnsw (embedding vector_cosine_ops);
        """

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PgVectorStore disconnected")

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            await self.connect()
        return self._pool  # type: ignore[return-value]

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def upsert(self, records: list[LongTermMemoryRecord]) -> int:
        """Insert or overwrite records by id, in batches.

        Returns:
            Number of records written
        """
        if not records:
            return 0
        missing = [r.id for r in records if r.embedding is None]
        if missing:
            raise ValueError(f"Records without embeddings: {missing[:3]}")

        pool = await self._get_pool()
        query = f"""
            INSERT INTO {self.table}
                (id, user_id, chat_id, role, turn_id, content, tags, metadata, created_at, embedding)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10)
            ON CONFLICT (id) DO UPDATE SET
                content = EXCLUDED.content,
                tags = EXCLUDED.tags,
                metadata = EXCLUDED.metadata,
                created_at = EXCLUDED.created_at,
                embedding = EXCLUDED.embedding
        """

        written = 0
        try:
            for i in range(0, len(records), self.batch_size):
                batch = records[i : i + self.batch_size]
                async with pool.acquire() as conn:
                    await conn.executemany(query, [self._record_args(r) for r in batch])
                written += len(batch)
                logger.debug(f"Upserted batch {i // self.batch_size + 1}, {len(batch)} records")
        except (asyncpg.PostgresError, OSError) as e:
            raise CollaboratorError("vector_store", f"upsert failed: {e}") from e

        return written

    @staticmethod
    def _record_args(record: LongTermMemoryRecord) -> tuple:
        return (
            record.id,
            record.user_id,
            record.chat_id,
            record.role,
            record.turn_id,
            record.content,
            list(record.tags),
            json.dumps(record.extra, default=str),
            record.timestamp,
            record.embedding,
        )

    async def delete(self, metadata_filter: dict[str, Any]) -> int:
        """Delete records matching a metadata filter. A user_id is always required.

        Returns:
            Number of records deleted
        """
        if not metadata_filter or not metadata_filter.get("user_id"):
            raise ValueError("delete() requires a filter with user_id")

        pool = await self._get_pool()
        fb = FilterBuilder().add_metadata_filter(metadata_filter)

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    f"DELETE FROM {self.table} WHERE {fb.build()}", *fb.values
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise CollaboratorError("vector_store", f"delete failed: {e}") from e

        # asyncpg returns a status string like "DELETE 4"
        deleted = int(result.split()[-1]) if result else 0
        logger.info(f"Deleted {deleted} records for filter {metadata_filter}")
        return deleted

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def query(
        self,
        vector: list[float],
        metadata_filter: dict[str, Any] | None = None,
        top_k: int = 5,
        threshold: float = 0.0,
    ) -> list[VectorMatch]:
        """Return the top_k records most similar to vector that pass threshold."""
        pool = await self._get_pool()

        fb = FilterBuilder(start_idx=3).add_metadata_filter(metadata_filter)
        query = f"""
            SELECT id, user_id, chat_id, role, turn_id, content, tags, metadata, created_at,
                   1 - (embedding <=> $1) AS score
            FROM {self.table}
            WHERE {fb.build()}
            ORDER BY embedding <=> $1
            LIMIT $2
        """

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, vector, top_k, *fb.values)
        except (asyncpg.PostgresError, OSError) as e:
            raise CollaboratorError("vector_store", f"query failed: {e}") from e

        matches = [self._row_to_match(row) for row in rows]
        return [m for m in matches if m.score >= threshold]

    async def count(self, metadata_filter: dict[str, Any] | None = None) -> int:
        pool = await self._get_pool()
        fb = FilterBuilder().add_metadata_filter(metadata_filter)
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    f"SELECT COUNT(*) FROM {self.table} WHERE {fb.build()}", *fb.values
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise CollaboratorError("vector_store", f"count failed: {e}") from e

    @staticmethod
    def _row_to_match(row: Any) -> VectorMatch:
        extra = row["metadata"]
        if isinstance(extra, str):
            extra = json.loads(extra)
        created_at = row["created_at"]
        metadata = {
            **(extra or {}),
            "user_id": row["user_id"],
            "chat_id": row["chat_id"],
            "role": row["role"],
            "turn_id": row["turn_id"],
            "tags": list(row["tags"] or []),
            "timestamp": created_at.isoformat() if isinstance(created_at, datetime) else created_at,
        }
        return VectorMatch(
            id=row["id"],
            content=row["content"],
            score=float(row["score"]),
            metadata=metadata,
        )
