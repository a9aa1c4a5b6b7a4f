"""Configurable field specs and locator helpers.

A locator (``RunnableConfig``) is a plain dict whose ``"configurable"``
entry carries the selection fields every store operation reads::

    {"configurable": {"thread_id": "run-1", "thread_ts": "2024-05-01T12:00:00+00:00", "checkpoint_id": 7}}

``checkpoint_id`` names one saved checkpoint exactly and wins over
``thread_ts``. Without either the latest checkpoint is selected.
Backends may add their own keys next to these.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from stepstore.exceptions import InvalidConfigError

RunnableConfig = dict[str, Any]

CONFIG_KEY_CONFIGURABLE = "configurable"
CONFIG_KEY_THREAD_ID = "thread_id"
CONFIG_KEY_THREAD_TS = "thread_ts"
CONFIG_KEY_CHECKPOINT_ID = "checkpoint_id"


@dataclass(frozen=True)
class ConfigurableFieldSpec:
    """Declarative description of a user-selectable configuration field.

    Consumed by whatever resolves user options into a concrete locator.
    Only the shape matters here.

    Attributes:
        id: Key of the field inside ``config["configurable"]``.
        annotation: Expected type of the value.
        name: Display name.
        description: Help text.
        default: Value used when the field is not supplied.
        is_shared: Whether the field applies to a whole run rather than one node.
        dependencies: Ids of fields this one depends on.
    """

    id: str
    annotation: Any
    name: str | None = None
    description: str | None = None
    default: Any = None
    is_shared: bool = False
    dependencies: list[str] | None = None


CHECKPOINT_THREAD_ID = ConfigurableFieldSpec(
    id=CONFIG_KEY_THREAD_ID,
    annotation=str,
    name="Thread ID",
    description=None,
    default="",
    is_shared=True,
    dependencies=None,
)

CHECKPOINT_THREAD_TS = ConfigurableFieldSpec(
    id=CONFIG_KEY_THREAD_TS,
    annotation=str | None,
    name="Thread Timestamp",
    description="Pass to fetch a past checkpoint. If None, fetches the latest checkpoint.",
    default=None,
    is_shared=True,
    dependencies=None,
)


def make_config(
    thread_id: str,
    thread_ts: str | datetime | None = None,
    checkpoint_id: int | None = None,
    **extra: Any,
) -> RunnableConfig:
    """Build a locator for a thread, optionally pinned to a point in time or one checkpoint."""
    configurable: dict[str, Any] = {CONFIG_KEY_THREAD_ID: thread_id, **extra}
    if thread_ts is not None:
        configurable[CONFIG_KEY_THREAD_TS] = normalize_ts(thread_ts)
    if checkpoint_id is not None:
        configurable[CONFIG_KEY_CHECKPOINT_ID] = checkpoint_id
    return {CONFIG_KEY_CONFIGURABLE: configurable}


def _configurable(config: RunnableConfig | None) -> dict[str, Any]:
    if not config:
        return {}
    return config.get(CONFIG_KEY_CONFIGURABLE) or {}


def get_thread_id(config: RunnableConfig | None) -> str:
    """Return the thread id from a locator.

    Raises:
        InvalidConfigError: If the thread id is missing, empty or not a string.
    """
    thread_id = _configurable(config).get(CONFIG_KEY_THREAD_ID)
    if not isinstance(thread_id, str) or not thread_id:
        raise InvalidConfigError(
            CONFIG_KEY_THREAD_ID,
            thread_id,
            f"Locator must carry a non-empty string '{CONFIG_KEY_THREAD_ID}' under '{CONFIG_KEY_CONFIGURABLE}', got {thread_id!r}",
        )
    return thread_id


def get_thread_ts(config: RunnableConfig | None) -> str | None:
    """Return the normalized point-in-time selector, or None for "latest"."""
    value = _configurable(config).get(CONFIG_KEY_THREAD_TS)
    if value is None:
        return None
    return normalize_ts(value)


def get_checkpoint_id(config: RunnableConfig | None) -> int | None:
    """Return the exact checkpoint id from a locator, or None.

    Raises:
        InvalidConfigError: If the id is present but not an integer.
    """
    value = _configurable(config).get(CONFIG_KEY_CHECKPOINT_ID)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigError(CONFIG_KEY_CHECKPOINT_ID, value, f"'{CONFIG_KEY_CHECKPOINT_ID}' must be an integer, got {value!r}")
    return value


def normalize_ts(value: str | datetime) -> str:
    """Normalize a timestamp to a UTC ISO-8601 string.

    Normalized strings compare in chronological order, which is what
    backends rely on for ordering. Naive datetimes are taken as UTC and a
    trailing ``Z`` is read as ``+00:00``.

    Raises:
        InvalidConfigError: If ``value`` is not a datetime or ISO-8601 string.
    """
    if isinstance(value, str):
        try:
            # fromisoformat only accepts "Z" from Python 3.11
            text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidConfigError(CONFIG_KEY_THREAD_TS, value, f"'{CONFIG_KEY_THREAD_TS}' must be an ISO-8601 timestamp, got {value!r}") from e
    elif isinstance(value, datetime):
        dt = value
    else:
        raise InvalidConfigError(CONFIG_KEY_THREAD_TS, value)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()
