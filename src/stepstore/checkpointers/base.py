"""Checkpoint saver base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from stepstore.checkpointers.config import (
    CHECKPOINT_THREAD_ID,
    CHECKPOINT_THREAD_TS,
    ConfigurableFieldSpec,
    RunnableConfig,
    make_config,
)
from stepstore.checkpointers.serializers import JsonSerializer, Serializer
from stepstore.checkpointers.types import Checkpoint, CheckpointMetadata, CheckpointTuple


class BaseCheckpointSaver(ABC):
    """Base class for checkpoint persistence.

    A thread's checkpoints form an append-only lineage. Every ``put`` adds
    a new entry chained to the checkpoint the incoming locator selects;
    nothing is ever overwritten.

    Every saved checkpoint gets a unique ``checkpoint_id`` in save order.
    The locator returned by ``put`` carries it, so it keeps naming that exact
    checkpoint even when a later save shares its timestamp. Parent links
    are recorded by id as well.

    Save order is authoritative: "latest" and history order follow it.
    ``get_tuple`` with a ``thread_ts`` selector considers entries whose
    ``ts`` is at or before the selector and returns the one with the
    highest ``(ts, step, save order)``, so identical timestamps resolve to
    the highest step, then the most recently saved.

    The engine is expected to be the only writer for a thread; concurrent
    ``put`` calls on the same thread are not reconciled. Readers may see a
    snapshot older than a write that just completed.

    Args:
        serializer: Codec for checkpoints and metadata (default: JSON).
    """

    def __init__(self, serializer: Serializer | None = None):
        self.serializer = serializer or JsonSerializer()

    @property
    def config_specs(self) -> list[ConfigurableFieldSpec]:
        """Selectable locator fields. Subclasses may append, never remove."""
        return [CHECKPOINT_THREAD_ID, CHECKPOINT_THREAD_TS]

    # === Read Operations ===

    async def get(self, config: RunnableConfig) -> Checkpoint | None:
        """Get the checkpoint selected by ``config``, or None."""
        value = await self.get_tuple(config)
        return value.checkpoint if value is not None else None

    @abstractmethod
    async def get_tuple(self, config: RunnableConfig) -> CheckpointTuple | None:
        """Get the checkpoint tuple selected by ``config``.

        With ``checkpoint_id`` this is exactly that checkpoint (``thread_ts``
        is then ignored). Otherwise, with ``thread_ts``, the latest
        checkpoint at or before that time, and without either the thread's
        latest checkpoint. Returns None if the thread has no match.
        """
        ...

    @abstractmethod
    def list_checkpoints(
        self,
        config: RunnableConfig,
        *,
        before: RunnableConfig | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        """Iterate a thread's checkpoints, most recent first.

        Implementations are async generators. An unknown thread yields
        nothing. Consumers may stop early; any backend cursor is released.

        Args:
            config: Locator naming the thread. ``thread_ts`` and
                ``checkpoint_id`` are ignored.
            before: Only yield checkpoints saved before this locator's
                ``checkpoint_id`` or, when it has none, strictly older than
                its ``thread_ts``.
            limit: Yield at most this many checkpoints.

        Raises:
            ValueError: If ``limit`` is negative.
        """
        ...

    # === Write Operations ===

    @abstractmethod
    async def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
    ) -> RunnableConfig:
        """Persist a checkpoint on top of the one ``config`` selects.

        The checkpoint ``get_tuple(config)`` would return becomes the
        parent; there is none on a thread's first save. The returned
        locator selects the new checkpoint and is what the engine passes to
        the next ``put``.

        Raises:
            CheckpointInvariantError: If the checkpoint is inconsistent or
                its format version is lower than its parent's.
            StorageError: If the backend fails to write.
        """
        ...

    # === Lifecycle ===

    async def initialize(self) -> None:  # noqa: B027
        """Initialize the saver (create tables, etc.)."""

    async def close(self) -> None:  # noqa: B027
        """Clean up resources (close connections, etc.)."""

    async def __aenter__(self) -> BaseCheckpointSaver:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # === Helpers for subclasses ===

    def _dump_checkpoint(self, checkpoint: Checkpoint) -> bytes:
        return self.serializer.serialize(checkpoint.to_dict())

    def _load_checkpoint(self, data: bytes) -> Checkpoint:
        return Checkpoint.from_dict(self.serializer.deserialize(data))

    def _dump_metadata(self, metadata: CheckpointMetadata) -> bytes:
        return self.serializer.serialize(metadata.to_dict())

    def _load_metadata(self, data: bytes | None) -> CheckpointMetadata | None:
        if data is None:
            return None
        return CheckpointMetadata.from_dict(self.serializer.deserialize(data))

    @staticmethod
    def _parent_config(thread_id: str, parent_ts: str | None, parent_id: int | None) -> RunnableConfig | None:
        if parent_id is None:
            return None
        return make_config(thread_id, parent_ts, checkpoint_id=parent_id)

    @staticmethod
    def _check_limit(limit: int | None) -> None:
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
