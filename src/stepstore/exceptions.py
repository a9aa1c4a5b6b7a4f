"""Exceptions for stepstore checkpoint persistence.

A missing checkpoint is never an error: lookups return ``None`` and
history iteration yields nothing. Everything here signals a real failure
that the caller (usually the execution engine) must decide how to handle.
"""

from __future__ import annotations


class CheckpointerError(Exception):
    """Base class for all stepstore errors."""


class StorageError(CheckpointerError):
    """The storage backend failed to read or write.

    Raised by concrete backends when the underlying medium fails. The
    original driver exception is chained as ``__cause__``.

    Attributes:
        operation: Name of the store operation that failed (e.g. "put")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        self.message = message or f"Checkpoint storage failed during '{operation}'"
        super().__init__(self.message)


class SchemaVersionError(StorageError):
    """Database schema is newer than this version of stepstore supports.

    Attributes:
        found: Schema version recorded in the database
        supported: Highest schema version this library understands
    """

    def __init__(self, found: int, supported: int) -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            "initialize",
            f"Checkpoint database has schema v{found}, but this stepstore only supports up to v{supported}. Upgrade stepstore to open it.",
        )


class InvalidConfigError(CheckpointerError, ValueError):
    """Locator passed to a store operation is unusable.

    Raised when the thread identifier is missing or the point-in-time
    selector cannot be parsed.

    Attributes:
        field: The configurable field that failed validation
        value: The offending value
    """

    def __init__(self, field: str, value: object, message: str | None = None) -> None:
        self.field = field
        self.value = value
        self.message = message or f"Invalid value for configurable field '{field}': {value!r}"
        super().__init__(self.message)


class CheckpointInvariantError(CheckpointerError, ValueError):
    """Checkpoint violates a structural invariant.

    Attributes:
        violations: One description per violated invariant
    """

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        lines = "\n".join(f"  - {v}" for v in violations)
        super().__init__(f"Checkpoint is inconsistent:\n{lines}")
