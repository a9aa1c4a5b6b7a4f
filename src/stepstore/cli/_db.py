"""Database access helpers for CLI commands.

Opens a SqliteCheckpointer from a --db path and bridges to async code.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any


def _require_aiosqlite() -> None:
    """Check that aiosqlite is available."""
    try:
        import aiosqlite  # noqa: F401
    except ImportError:
        print("Error: aiosqlite is required for the CLI. Install with: pip install stepstore[sqlite]", file=sys.stderr)
        raise SystemExit(1) from None


def run_async(coro: Any) -> Any:
    """Run an async coroutine from sync CLI context."""
    return asyncio.run(coro)


def open_checkpointer(db: str):
    """Create a SqliteCheckpointer for an existing database file.

    Use as ``async with open_checkpointer(db) as cp:``. A missing file is
    reported and exits instead of silently creating an empty database.
    """
    _require_aiosqlite()
    if db != ":memory:" and not Path(db).is_file():
        print(f"Error: Database '{db}' not found.", file=sys.stderr)
        raise SystemExit(1)

    from stepstore.checkpointers import SqliteCheckpointer

    return SqliteCheckpointer(db)
