"""Helpers for working with decoded results."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

__all__ = ["value_at"]


def value_at(root: Mapping[str, Any], path: str) -> Any:
    """Return the value at a dotted *path* within nested maps.

    ``value_at({"a": {"b": 1}}, "a.b")`` returns ``1``.  Returns ``None``
    as soon as a component is missing or a non-map is reached.

    Raises:
        TypeError: If *root* is not a mapping.

    """
    if not isinstance(root, Mapping):
        raise TypeError(f"root must be a mapping, got {type(root).__name__}")
    value: Any = root
    for component in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(component)
    return value
