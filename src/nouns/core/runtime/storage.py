"""
Storage protocol and the in-memory implementation.

Persisted layout of one bound definition:

    "$"         serialized definition
    "$version"  applied definition version
    <id>        instance payload, tagged with its own "$version"
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

DEFINITION_KEY = "$"
VERSION_KEY = "$version"
RESERVED_PREFIX = "$"


@runtime_checkable
class Storage(Protocol):
    """Key-value storage a definition binds to. Assumed atomic per key."""

    def get(self, key: str) -> Any: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list(self, prefix: str | None = None, limit: int | None = None) -> dict[str, Any]: ...


class MemoryStorage:
    """Dict-backed storage. Values are copied in and out."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def list(self, prefix: str | None = None, limit: int | None = None) -> dict[str, Any]:
        """Entries ordered by key, optionally filtered by *prefix*."""
        keys = sorted(k for k in self._data if prefix is None or k.startswith(prefix))
        if limit is not None:
            keys = keys[:limit]
        return {k: copy.deepcopy(self._data[k]) for k in keys}
