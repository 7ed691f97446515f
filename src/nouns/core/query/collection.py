"""
Lazy, chainable collections.

Nothing is evaluated until the collection is iterated or a terminal
operation (``find``, ``first``, ``count``, ``to_list``) runs, and every
iteration re-reads the source.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, Generic, TypeVar

from ..ir import Instance

T = TypeVar("T")
U = TypeVar("U")

Filter = Mapping[str, Any] | Callable[[Any], bool]


def reference_id(value: Any) -> Any:
    """Identity of a reference value: Instance id, ``$id`` of a mapping, or the value."""
    if isinstance(value, Instance):
        return value.id
    if isinstance(value, Mapping) and "$id" in value:
        return value["$id"]
    return value


def field_value(item: Any, field: str) -> Any:
    if isinstance(item, Instance):
        if field == "$id":
            return item.id
        if field == "$type":
            return item.type
        return item.data.get(field)
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


def value_matches(actual: Any, expected: Any) -> bool:
    """Equality tolerant of reference-valued fields (compared by id)."""
    if isinstance(actual, (list, tuple)) and not isinstance(expected, (list, tuple)):
        return any(value_matches(a, expected) for a in actual)
    if actual == expected:
        return True
    return reference_id(actual) == reference_id(expected)


def matches(item: Any, filter: Mapping[str, Any]) -> bool:
    return all(value_matches(field_value(item, field), expected) for field, expected in filter.items())


class Collection(Generic[T]):
    """A lazily evaluated sequence over a re-readable source."""

    def __init__(self, source: Callable[[], Iterable[T]] | Iterable[T]):
        if callable(source):
            self._source: Callable[[], Iterable[T]] = source
        else:
            items = list(source)
            self._source = lambda: items

    def __iter__(self) -> Iterator[T]:
        return iter(self._source())

    def __repr__(self) -> str:
        return "Collection(<lazy>)"

    def where(self, filter: Filter | None = None) -> Collection[T]:
        """Keep items matching a field map (reference fields compare by id) or predicate."""
        if filter is None:
            return self
        if isinstance(filter, Mapping):
            criteria = dict(filter)
            return self.filter(lambda item: matches(item, criteria))
        return self.filter(filter)

    def filter(self, predicate: Callable[[T], bool]) -> Collection[T]:
        source = self._source
        return Collection(lambda: (item for item in source() if predicate(item)))

    def map(self, fn: Callable[[T], U]) -> Collection[U]:
        source = self._source
        return Collection(lambda: (fn(item) for item in source()))

    def flat_map(self, fn: Callable[[T], Iterable[U]]) -> Collection[U]:
        source = self._source
        return Collection(lambda: (result for item in source() for result in fn(item)))

    def find(self, predicate: Callable[[T], bool]) -> T | None:
        for item in self:
            if predicate(item):
                return item
        return None

    def first(self) -> T | None:
        return next(iter(self), None)

    def count(self) -> int:
        return sum(1 for _ in self)

    def to_list(self) -> list[T]:
        return list(self)
