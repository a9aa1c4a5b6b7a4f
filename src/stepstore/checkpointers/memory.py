"""In-memory checkpoint saver."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from dataclasses import dataclass

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
from stepstore.checkpointers.types import Checkpoint, CheckpointMetadata, CheckpointTuple, validate_checkpoint

logger = logging.getLogger("stepstore.checkpointers")


@dataclass(frozen=True)
class _Entry:
    """One saved checkpoint, kept in serialized form. ``seq`` is its checkpoint id."""

    seq: int
    ts: str
    step: int
    v: int
    parent_seq: int | None
    parent_ts: str | None
    checkpoint: bytes
    metadata: bytes


class InMemoryCheckpointer(BaseCheckpointSaver):
    """Dict-based checkpoint saver that lives as long as the object.

    Checkpoints are stored serialized, so a saved checkpoint is independent
    of the caller's object and every read returns a fresh copy.

    Best for: tests, notebooks, short-lived runs that never resume.

    Args:
        serializer: Codec for checkpoints and metadata (default: JSON).

    Example::

        saver = InMemoryCheckpointer()
        config = await saver.put(make_config("run-1"), empty_checkpoint(), metadata)
        latest = await saver.get(make_config("run-1"))
    """

    def __init__(self, serializer: Serializer | None = None):
        super().__init__(serializer=serializer)
        self._threads: defaultdict[str, list[_Entry]] = defaultdict(list)
        self._seq = 0

    async def get_tuple(self, config: RunnableConfig) -> CheckpointTuple | None:
        thread_id = get_thread_id(config)
        entry = self._select(thread_id, get_checkpoint_id(config), get_thread_ts(config))
        if entry is None:
            return None
        return self._to_tuple(thread_id, entry)

    async def list_checkpoints(
        self,
        config: RunnableConfig,
        *,
        before: RunnableConfig | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[CheckpointTuple]:
        self._check_limit(limit)
        thread_id = get_thread_id(config)
        before_id = get_checkpoint_id(before)
        before_ts = get_thread_ts(before) if before_id is None else None

        # Snapshot so puts made while the consumer is suspended don't shift the iteration
        entries = list(reversed(self._threads.get(thread_id, [])))
        yielded = 0
        for entry in entries:
            if limit is not None and yielded >= limit:
                return
            if before_id is not None and entry.seq >= before_id:
                continue
            if before_ts is not None and entry.ts >= before_ts:
                continue
            yielded += 1
            yield self._to_tuple(thread_id, entry)

    async def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
    ) -> RunnableConfig:
        thread_id = get_thread_id(config)
        parent = self._select(thread_id, get_checkpoint_id(config), get_thread_ts(config))
        validate_checkpoint(checkpoint, parent_version=parent.v if parent else None)

        ts = normalize_ts(checkpoint.ts)
        self._seq += 1
        self._threads[thread_id].append(
            _Entry(
                seq=self._seq,
                ts=ts,
                step=metadata.step,
                v=checkpoint.v,
                parent_seq=parent.seq if parent else None,
                parent_ts=parent.ts if parent else None,
                checkpoint=self._dump_checkpoint(checkpoint),
                metadata=self._dump_metadata(metadata),
            )
        )
        logger.debug("Saved checkpoint %d (%s) for thread %r (step %d)", self._seq, ts, thread_id, metadata.step)
        return make_config(thread_id, ts, checkpoint_id=self._seq)

    def _select(self, thread_id: str, checkpoint_id: int | None, thread_ts: str | None) -> _Entry | None:
        """Entry with checkpoint_id, else the highest (ts, step, seq) at or before thread_ts, else the latest."""
        entries = self._threads.get(thread_id)
        if not entries:
            return None
        if checkpoint_id is not None:
            return next((e for e in entries if e.seq == checkpoint_id), None)
        if thread_ts is None:
            return entries[-1]
        candidates = [e for e in entries if e.ts <= thread_ts]
        if not candidates:
            return None
        return max(candidates, key=lambda e: (e.ts, e.step, e.seq))

    def _to_tuple(self, thread_id: str, entry: _Entry) -> CheckpointTuple:
        return CheckpointTuple(
            config=make_config(thread_id, entry.ts, checkpoint_id=entry.seq),
            checkpoint=self._load_checkpoint(entry.checkpoint),
            metadata=self._load_metadata(entry.metadata),
            parent_config=self._parent_config(thread_id, entry.parent_ts, entry.parent_seq),
        )
