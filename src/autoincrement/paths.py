"""Dotted-path access into nested document dictionaries."""

from collections.abc import MutableMapping
from typing import Any


def split_path(path: str) -> list[str]:
    parts = path.split(".")
    if not path or any(not part for part in parts):
        raise ValueError(f"Invalid field path: {path!r}")
    return parts


def get_path(data: MutableMapping[str, Any], path: str, default: Any = None) -> Any:
    """Return the value at a dotted path, or default if any segment is missing."""
    current: Any = data
    for part in split_path(path):
        if not isinstance(current, MutableMapping) or part not in current:
            return default
        current = current[part]
    return current


def check_settable(data: MutableMapping[str, Any], path: str) -> None:
    """Raise TypeError if set_path would hit a non-mapping parent. Does not modify data."""
    current: Any = data
    for part in split_path(path)[:-1]:
        child = current.get(part)
        if child is None:
            return
        if not isinstance(child, MutableMapping):
            raise TypeError(f"Cannot set {path!r}: {part!r} is not a mapping")
        current = child


def set_path(data: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Assign value at a dotted path, creating intermediate dicts as needed.

    Raises:
        TypeError: If an intermediate segment holds a non-mapping value
    """
    check_settable(data, path)
    *parents, leaf = split_path(path)
    current = data
    for part in parents:
        child = current.get(part)
        if child is None:
            child = {}
            current[part] = child
        current = child
    current[leaf] = value
