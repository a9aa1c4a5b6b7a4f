"""stepstore - Checkpoint persistence for stateful graph execution."""

from stepstore._utils import deep_copy
from stepstore.checkpointers import (
    BaseCheckpointSaver,
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    CheckpointTuple,
    ConfigurableFieldSpec,
    InMemoryCheckpointer,
    JsonSerializer,
    PickleSerializer,
    RunnableConfig,
    Serializer,
    SqliteCheckpointer,
    copy_checkpoint,
    empty_checkpoint,
    make_config,
    validate_checkpoint,
)
from stepstore.exceptions import (
    CheckpointerError,
    CheckpointInvariantError,
    InvalidConfigError,
    SchemaVersionError,
    StorageError,
)

__all__ = [
    # Checkpoint model
    "Checkpoint",
    "CheckpointMetadata",
    "CheckpointSource",
    "CheckpointTuple",
    "empty_checkpoint",
    "copy_checkpoint",
    "validate_checkpoint",
    "deep_copy",
    # Locator
    "ConfigurableFieldSpec",
    "RunnableConfig",
    "make_config",
    # Savers
    "BaseCheckpointSaver",
    "InMemoryCheckpointer",
    "SqliteCheckpointer",
    # Serializers
    "Serializer",
    "JsonSerializer",
    "PickleSerializer",
    # Errors
    "CheckpointerError",
    "CheckpointInvariantError",
    "InvalidConfigError",
    "SchemaVersionError",
    "StorageError",
]
