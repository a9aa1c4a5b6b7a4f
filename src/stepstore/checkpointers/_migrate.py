"""Schema management for SQLite checkpoint databases.

Runs on an open aiosqlite connection. Detects the schema version of a
database and creates the current schema on an empty one. Databases
written by a newer stepstore are refused rather than guessed at.
"""

from __future__ import annotations

import logging
from typing import Any

from stepstore.exceptions import SchemaVersionError

logger = logging.getLogger("stepstore.checkpointers")

SCHEMA_VERSION = 1


async def detect_schema_version(conn: Any) -> int:
    """Detect the schema version of an existing database.

    Returns:
        0 = empty database (no checkpoint tables)
        N = version recorded in the _schema_version table
    """
    tables = {row[0] for row in await conn.execute_fetchall("SELECT name FROM sqlite_master WHERE type='table'")}

    if "_schema_version" in tables:
        rows = await conn.execute_fetchall("SELECT version FROM _schema_version")
        return rows[0][0] if rows else 0

    return 0


async def create_schema(conn: Any) -> None:
    """Create a fresh schema on an empty database."""
    await conn.execute(_CREATE_CHECKPOINTS)
    await _create_indexes(conn)

    await conn.execute("CREATE TABLE IF NOT EXISTS _schema_version (version INTEGER NOT NULL)")
    await conn.execute("DELETE FROM _schema_version")
    await conn.execute("INSERT INTO _schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    await conn.commit()

    logger.info("Created checkpoint schema v%d.", SCHEMA_VERSION)


async def ensure_schema(conn: Any) -> None:
    """Detect schema version and create as needed.

    Raises:
        SchemaVersionError: If the database was written by a newer schema.
    """
    version = await detect_schema_version(conn)

    if version == SCHEMA_VERSION:
        return
    if version == 0:
        await create_schema(conn)
        return

    logger.warning("Checkpoint database has schema v%d; this version supports up to v%d.", version, SCHEMA_VERSION)
    raise SchemaVersionError(found=version, supported=SCHEMA_VERSION)


# === SQL Definitions ===

# id is the save order; thread_ts is the checkpoint timestamp (UTC ISO-8601)
_CREATE_CHECKPOINTS = """
CREATE TABLE IF NOT EXISTS checkpoints (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL,
    thread_ts TEXT NOT NULL,
    parent_id INTEGER,
    parent_ts TEXT,
    step INTEGER NOT NULL,
    source TEXT NOT NULL,
    v INTEGER NOT NULL,
    checkpoint BLOB NOT NULL,
    metadata BLOB,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""


async def _create_indexes(conn: Any) -> None:
    """Create indexes for latest, point-in-time and history lookups."""
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_checkpoints_thread ON checkpoints(thread_id, id DESC)")
    await conn.execute("CREATE INDEX IF NOT EXISTS idx_checkpoints_thread_ts ON checkpoints(thread_id, thread_ts DESC, step DESC, id DESC)")
