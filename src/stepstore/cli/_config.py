"""Default checkpoint database for CLI commands.

Set it once per project instead of passing ``--db`` every time::

    [tool.stepstore]
    db = "./state/checkpoints.db"

Only the nearest pyproject.toml is consulted.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

DEFAULT_DB = "./checkpoints.db"


def _load_toml(path: Path) -> dict[str, Any]:
    if sys.version_info >= (3, 11):
        import tomllib
    else:
        import tomli as tomllib

    with path.open("rb") as f:
        return tomllib.load(f)


def configured_db(start: Path | None = None) -> str | None:
    """Return ``[tool.stepstore] db`` from the nearest pyproject.toml, or None."""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        pyproject = directory / "pyproject.toml"
        if pyproject.is_file():
            db = _load_toml(pyproject).get("tool", {}).get("stepstore", {}).get("db")
            return db or None
    return None


def resolve_db(db: str | None, start: Path | None = None) -> str:
    """Pick the database path: explicit --db, then pyproject, then the default."""
    return db or configured_db(start) or DEFAULT_DB
