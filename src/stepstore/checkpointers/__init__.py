"""Checkpoint savers for graph execution state.

Provides the ``BaseCheckpointSaver`` ABC, in-memory and SQLite
implementations, and the checkpoint data model they persist.
"""

from stepstore.checkpointers.base import BaseCheckpointSaver
from stepstore.checkpointers.config import (
    CHECKPOINT_THREAD_ID,
    CHECKPOINT_THREAD_TS,
    ConfigurableFieldSpec,
    RunnableConfig,
    get_checkpoint_id,
    get_thread_id,
    get_thread_ts,
    make_config,
    normalize_ts,
)
from stepstore.checkpointers.memory import InMemoryCheckpointer
from stepstore.checkpointers.serializers import JsonSerializer, PickleSerializer, Serializer
from stepstore.checkpointers.sqlite import SqliteCheckpointer
from stepstore.checkpointers.types import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    CheckpointTuple,
    ThreadSummary,
    copy_checkpoint,
    empty_checkpoint,
    validate_checkpoint,
)

__all__ = [
    "BaseCheckpointSaver",
    "CHECKPOINT_THREAD_ID",
    "CHECKPOINT_THREAD_TS",
    "Checkpoint",
    "CheckpointMetadata",
    "CheckpointSource",
    "CheckpointTuple",
    "ConfigurableFieldSpec",
    "InMemoryCheckpointer",
    "JsonSerializer",
    "PickleSerializer",
    "RunnableConfig",
    "Serializer",
    "SqliteCheckpointer",
    "ThreadSummary",
    "copy_checkpoint",
    "empty_checkpoint",
    "get_checkpoint_id",
    "get_thread_id",
    "get_thread_ts",
    "make_config",
    "normalize_ts",
    "validate_checkpoint",
]
