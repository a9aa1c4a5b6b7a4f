"""SQLite-based checkpoint saver using aiosqlite."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

from stepstore.checkpointers._migrate import ensure_schema
from stepstore.checkpointers.base import BaseCheckpointSaver
from stepstore.checkpointers.config import (
    RunnableConfig,
    get_checkpoint_id,
    get_thread_id,
    get_thread_ts,
    make_config,
    normalize_ts,
)
from stepstore.checkpointers.serializers import Serializer
from stepstore.checkpointers.types import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointTuple,
    ThreadSummary,
    validate_checkpoint,
)
from stepstore.exceptions import StorageError

logger = logging.getLogger("stepstore.checkpointers")

# Explicit column list for SELECT queries; row indexes below depend on this order
_CHECKPOINT_COLS = "id, thread_id, thread_ts, parent_id, parent_ts, checkpoint, metadata"


def _require_aiosqlite() -> Any:
    """Import aiosqlite with a clear error message if not installed."""
    try:
        import aiosqlite

        return aiosqlite
    except ImportError:
        raise ImportError("SqliteCheckpointer requires aiosqlite. Install it with: pip install stepstore[sqlite]") from None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as StorageError, keeping the cause."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(operation, f"SQLite error during '{operation}': {e}") from e


class SqliteCheckpointer(BaseCheckpointSaver):
    """SQLite-based checkpoint persistence.

    Best for: local development, single-server deployments, simple production.

    Every ``put`` inserts a row; rows are never updated or deleted. The
    autoincrement row id is the save order and the ``checkpoint_id``.

    Args:
        path: Path to SQLite database file, or ":memory:".
        serializer: Codec for checkpoints and metadata (default: JSON).

    Example::

        async with SqliteCheckpointer("./checkpoints.db") as saver:
            config = await saver.put(make_config("run-1"), checkpoint, metadata)
            async for item in saver.list_checkpoints(config):
                print(item.checkpoint.ts, item.metadata.step)
    """

    def __init__(self, path: str, *, serializer: Serializer | None = None):
        super().__init__(serializer=serializer)
        self._path = path
        self._db: Any = None
        self._aiosqlite = _require_aiosqlite()

    async def initialize(self) -> None:
        """Open the database and create tables if they don't exist."""
        if self._db is not None:
            return
        with _storage_errors("initialize"):
            db = await self._aiosqlite.connect(self._path)
            try:
                # WAL lets CLI readers run alongside an engine writing checkpoints
                await db.execute("PRAGMA journal_mode=WAL")
                await ensure_schema(db)
            except BaseException:
                await db.close()
                raise
        self._db = db

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def _ensure_db(self) -> None:
        """Lazy-initialize on first use."""
        if self._db is None:
            await self.initialize()

    # === Write ===

    async def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
    ) -> RunnableConfig:
        """Insert a checkpoint chained to the one ``config`` selects."""
        await self._ensure_db()
        thread_id = get_thread_id(config)

        with _storage_errors("put"):
            parent = await self._select_row(thread_id, get_checkpoint_id(config), get_thread_ts(config), "id, thread_ts, v")
            parent_id, parent_ts, parent_v = parent if parent else (None, None, None)
            validate_checkpoint(checkpoint, parent_version=parent_v)

            ts = normalize_ts(checkpoint.ts)
            cursor = await self._db.execute(
                """
                INSERT INTO checkpoints (
                    thread_id, thread_ts, parent_id, parent_ts, step, source, v, checkpoint, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    thread_id,
                    ts,
                    parent_id,
                    parent_ts,
                    metadata.step,
                    metadata.source.value,
                    checkpoint.v,
                    self._dump_checkpoint(checkpoint),
                    self._dump_metadata(metadata),
                ),
            )
            checkpoint_id = cursor.lastrowid
            await cursor.close()
            await self._db.commit()

        logger.debug("Saved checkpoint %d (%s) for thread %r (step %d)", checkpoint_id, ts, thread_id, metadata.step)
        return make_config(thread_id, ts, checkpoint_id=checkpoint_id)

    # === Read ===

    async def get_tuple(self, config: RunnableConfig) -> CheckpointTuple | None:
        """Checkpoint by id, else the latest at or before ``thread_ts``, else the latest."""
        await self._ensure_db()
        thread_id = get_thread_id(config)
        with _storage_errors("get_tuple"):
            row = await self._select_row(thread_id, get_checkpoint_id(config), get_thread_ts(config), _CHECKPOINT_COLS)
        if row is None:
            return None
        return self._row_to_tuple(row)

    async def list_checkpoints(
        self,
        config: RunnableConfig,
        *,
        before: RunnableConfig | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Stream a thread's checkpoints, most recent first.

        Rows are fetched lazily from one cursor. Wrap the iteration in
        ``contextlib.aclosing`` to release the cursor as soon as you stop.
        """
        self._check_limit(limit)
        await self._ensure_db()
        thread_id = get_thread_id(config)

        conditions = ["thread_id = ?"]
        params: list[Any] = [thread_id]
        before_id = get_checkpoint_id(before)
        before_ts = get_thread_ts(before) if before_id is None else None
        if before_id is not None:
            conditions.append("id < ?")
            params.append(before_id)
        elif before_ts is not None:
            conditions.append("thread_ts < ?")
            params.append(before_ts)
        query = f"SELECT {_CHECKPOINT_COLS} FROM checkpoints WHERE {' AND '.join(conditions)} ORDER BY id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with _storage_errors("list_checkpoints"):
            async with self._db.execute(query, params) as cursor:
                async for row in cursor:
                    yield self._row_to_tuple(row)

    async def list_threads(self, *, limit: int = 100) -> list[ThreadSummary]:
        """Summarize threads, most recently saved first."""
        await self._ensure_db()
        with _storage_errors("list_threads"):
            rows = await self._db.execute_fetchall(
                """
                SELECT c.thread_id, counts.n, c.thread_ts, c.step
                FROM checkpoints c
                JOIN (
                    SELECT thread_id, COUNT(*) AS n, MAX(id) AS max_id
                    FROM checkpoints GROUP BY thread_id
                ) counts ON c.id = counts.max_id
                ORDER BY c.id DESC
                LIMIT ?
                """,
                (limit,),
            )
        return [ThreadSummary(thread_id=r[0], checkpoint_count=r[1], latest_ts=r[2], latest_step=r[3]) for r in rows]

    # === Internal ===

    async def _select_row(self, thread_id: str, checkpoint_id: int | None, thread_ts: str | None, cols: str) -> tuple[Any, ...] | None:
        """Fetch the row a locator selects. Caller wraps storage errors."""
        if checkpoint_id is not None:
            cursor = await self._db.execute(
                f"SELECT {cols} FROM checkpoints WHERE thread_id = ? AND id = ?",
                (thread_id, checkpoint_id),
            )
        elif thread_ts is None:
            cursor = await self._db.execute(
                f"SELECT {cols} FROM checkpoints WHERE thread_id = ? ORDER BY id DESC LIMIT 1",
                (thread_id,),
            )
        else:
            cursor = await self._db.execute(
                f"""
                SELECT {cols} FROM checkpoints
                WHERE thread_id = ? AND thread_ts <= ?
                ORDER BY thread_ts DESC, step DESC, id DESC
                LIMIT 1
                """,
                (thread_id, thread_ts),
            )
        try:
            return await cursor.fetchone()
        finally:
            await cursor.close()

    def _row_to_tuple(self, row: tuple[Any, ...]) -> CheckpointTuple:
        """Convert a row to CheckpointTuple.

        columns: id, thread_id, thread_ts, parent_id, parent_ts, checkpoint, metadata
        """
        thread_id = row[1]
        return CheckpointTuple(
            config=make_config(thread_id, row[2], checkpoint_id=row[0]),
            checkpoint=self._load_checkpoint(row[5]),
            metadata=self._load_metadata(row[6]),
            parent_config=self._parent_config(thread_id, row[4], row[3]),
        )
