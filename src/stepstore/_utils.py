"""Utility functions for stepstore."""

from __future__ import annotations

from typing import TypeVar

T = TypeVar("T")


def deep_copy(value: T) -> T:
    """Structurally clone nested dicts, lists, tuples and sets.

    Every container in the result is a new object; leaves (str, int,
    None, arbitrary objects) are returned as-is and assumed immutable.
    Dict keys are reused since they are hashable.

    Input must be finite and acyclic. Cycles are not detected and will
    recurse until the interpreter's recursion limit is hit.

    Args:
        value: Value to clone

    Returns:
        A structurally equal value sharing no container with ``value``

    Examples:
        >>> seen = {"node": {"x": 1}}
        >>> cloned = deep_copy(seen)
        >>> cloned == seen, cloned["node"] is seen["node"]
        (True, False)
    """
    if isinstance(value, dict):
        return {k: deep_copy(v) for k, v in value.items()}  # type: ignore[return-value]
    if isinstance(value, list):
        return [deep_copy(v) for v in value]  # type: ignore[return-value]
    if isinstance(value, tuple):
        return tuple(deep_copy(v) for v in value)  # type: ignore[return-value]
    if isinstance(value, set):
        return {deep_copy(v) for v in value}  # type: ignore[return-value]
    return value

