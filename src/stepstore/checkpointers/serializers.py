"""Serializers (codecs) for persisting checkpoints and metadata."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any


class Serializer(ABC):
    """Base class for checkpoint codecs.

    Backends pass the dict form of checkpoints and metadata through a
    serializer before storing them, and back through it when loading.
    ``deserialize(serialize(x))`` must be structurally equal to ``x``.
    """

    @abstractmethod
    def serialize(self, value: Any) -> bytes:
        """Encode a value for storage."""
        ...

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        """Decode a stored value."""
        ...


class JsonSerializer(Serializer):
    """JSON serializer (default). Safe, human-readable, inspectable.

    Channel values must be JSON data: dicts with string keys, lists,
    strings, numbers, booleans and None. Tuples come back as lists.
    Cyclic values are rejected by ``json`` with a ValueError.

    By default, raises TypeError on non-JSON-serializable types.
    Pass ``lossy=True`` to fall back to ``str()`` for unsupported types.
    """

    def __init__(self, *, lossy: bool = False):
        self._default = str if lossy else None

    def serialize(self, value: Any) -> bytes:
        return json.dumps(value, default=self._default, separators=(",", ":")).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))


class PickleSerializer(Serializer):
    """Pickle serializer for channel values that are arbitrary Python objects.

    WARNING: Pickle can execute arbitrary code on deserialization.
    Requires explicit ``allow_pickle=True`` to construct.
    """

    def __init__(self, *, allow_pickle: bool = False):
        if not allow_pickle:
            raise ValueError(
                "PickleSerializer requires explicit allow_pickle=True. "
                "Pickle can execute arbitrary code on deserialization. "
                "Only use with trusted checkpoint databases."
            )

    def serialize(self, value: Any) -> bytes:
        import pickle

        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def deserialize(self, data: bytes) -> Any:
        import pickle

        return pickle.loads(data)  # noqa: S301
