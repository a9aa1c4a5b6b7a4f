"""Checkpoint types: snapshot, provenance metadata and lineage tuple."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from stepstore._utils import deep_copy
from stepstore.exceptions import CheckpointInvariantError

if TYPE_CHECKING:
    from stepstore.checkpointers.config import RunnableConfig

CHECKPOINT_FORMAT_VERSION = 1


def _utcnow_iso() -> str:
    """UTC-aware ISO timestamp (avoids deprecated utcnow)."""
    return datetime.now(timezone.utc).isoformat()


class CheckpointSource(Enum):
    """How a checkpoint came to exist."""

    INPUT = "input"
    LOOP = "loop"
    UPDATE = "update"


@dataclass
class Checkpoint:
    """Point-in-time snapshot of execution state.

    The execution engine mutates a working checkpoint in place between
    steps. Once handed to ``BaseCheckpointSaver.put`` it must be treated as
    immutable; take a ``copy_checkpoint`` before mutating further.

    Attributes:
        v: Schema version of the snapshot layout, not an execution counter.
        ts: Creation time (UTC ISO-8601). Used for selection and display.
        channel_values: Channel name -> current value. Opaque to this layer.
        channel_versions: Channel name -> version, bumped on every write.
        versions_seen: Node name -> {channel name -> version last observed}.
    """

    v: int = CHECKPOINT_FORMAT_VERSION
    ts: str = field(default_factory=_utcnow_iso)
    channel_values: dict[str, Any] = field(default_factory=dict)
    channel_versions: dict[str, int] = field(default_factory=dict)
    versions_seen: dict[str, dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Dict form handed to serializers. Containers are not copied."""
        return {
            "v": self.v,
            "ts": self.ts,
            "channel_values": self.channel_values,
            "channel_versions": self.channel_versions,
            "versions_seen": self.versions_seen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        return cls(
            v=data.get("v", CHECKPOINT_FORMAT_VERSION),
            ts=data["ts"],
            channel_values=data.get("channel_values") or {},
            channel_versions=data.get("channel_versions") or {},
            versions_seen=data.get("versions_seen") or {},
        )


def empty_checkpoint() -> Checkpoint:
    """Fresh checkpoint: format v1, stamped now, no channels."""
    return Checkpoint(
        v=CHECKPOINT_FORMAT_VERSION,
        ts=_utcnow_iso(),
        channel_values={},
        channel_versions={},
        versions_seen={},
    )


def copy_checkpoint(checkpoint: Checkpoint) -> Checkpoint:
    """Copy a checkpoint so the copy can be mutated independently.

    ``channel_values`` and ``channel_versions`` get a new top-level dict
    but share their values: channel values are replaced on write, never
    mutated in place. ``versions_seen`` is updated in place per node and
    channel, so it is cloned all the way down.
    """
    return Checkpoint(
        v=checkpoint.v,
        ts=checkpoint.ts,
        channel_values=dict(checkpoint.channel_values),
        channel_versions=dict(checkpoint.channel_versions),
        versions_seen=deep_copy(checkpoint.versions_seen),
    )


def validate_checkpoint(checkpoint: Checkpoint, *, parent_version: int | None = None) -> None:
    """Raise CheckpointInvariantError if the snapshot is inconsistent.

    Checks:
        - format version is at least 1, and not below ``parent_version``
        - every channel with a value has a version
        - no node has seen a channel version that does not exist yet
    """
    violations: list[str] = []

    if checkpoint.v < CHECKPOINT_FORMAT_VERSION:
        violations.append(f"format version {checkpoint.v} is below {CHECKPOINT_FORMAT_VERSION}")
    if parent_version is not None and checkpoint.v < parent_version:
        violations.append(f"format version {checkpoint.v} is below its parent's v{parent_version}")

    for channel in checkpoint.channel_values:
        if channel not in checkpoint.channel_versions:
            violations.append(f"channel '{channel}' has a value but no version")

    for node_name, seen in checkpoint.versions_seen.items():
        for channel, version in seen.items():
            current = checkpoint.channel_versions.get(channel)
            if current is None:
                violations.append(f"node '{node_name}' has seen unversioned channel '{channel}'")
            elif version > current:
                violations.append(f"node '{node_name}' has seen '{channel}' v{version}, but the channel is only at v{current}")

    if violations:
        raise CheckpointInvariantError(violations)


@dataclass(frozen=True)
class CheckpointMetadata:
    """Provenance of a checkpoint.

    Attributes:
        source: Run input, an execution step, or a manual state update.
        step: -1 for the initial input checkpoint, 0 for the first loop
            checkpoint, incrementing thereafter.
        writes: Node name -> values that node wrote in the transition that
            produced this checkpoint. None when nothing was written.
    """

    source: CheckpointSource
    step: int
    writes: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.source, CheckpointSource):
            # Accept the raw string form ("loop") and normalize
            object.__setattr__(self, "source", CheckpointSource(self.source))
        if self.step < -1:
            raise ValueError(f"step must be >= -1, got {self.step}")
        if self.step == -1 and self.source != CheckpointSource.INPUT:
            raise ValueError(f'step=-1 is reserved for source="input", got source="{self.source.value}"')

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable dict with only primitive types."""
        return {
            "source": self.source.value,
            "step": self.step,
            "writes": self.writes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckpointMetadata:
        return cls(
            source=CheckpointSource(data["source"]),
            step=data["step"],
            writes=data.get("writes"),
        )


@dataclass(frozen=True)
class CheckpointTuple:
    """A stored checkpoint together with where it sits in its lineage.

    Attributes:
        config: Locator that selects exactly this checkpoint.
        checkpoint: The snapshot itself.
        metadata: Provenance, if the backend recorded it.
        parent_config: Locator of the checkpoint this one was saved on top
            of. None for the first checkpoint of a thread.
    """

    config: RunnableConfig
    checkpoint: Checkpoint
    metadata: CheckpointMetadata | None = None
    parent_config: RunnableConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable dict."""
        return {
            "config": self.config,
            "checkpoint": self.checkpoint.to_dict(),
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "parent_config": self.parent_config,
        }


@dataclass(frozen=True)
class ThreadSummary:
    """Overview of one thread's lineage, for inspection tooling."""

    thread_id: str
    checkpoint_count: int
    latest_ts: str
    latest_step: int

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable dict."""
        return {
            "thread_id": self.thread_id,
            "checkpoint_count": self.checkpoint_count,
            "latest_ts": self.latest_ts,
            "latest_step": self.latest_step,
        }
