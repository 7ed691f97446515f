"""
Query context: type-indexed read access over a graph of instances.

    ctx = QueryContext("https://startups.do")
    ctx.register(acme)

    ctx.get("acme")                          # context-relative id
    ctx.Startup("acme")                      # exact id, then slug/suffix scan
    ctx.Startup({"stage": "Seed"}).count()   # lazy query
    ctx.query("Customer").where({"business": acme}).map(lambda c: c["name"])

There is no process-wide default context; construct one and pass it along.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..config import NounsConfig
from ..errors import InstanceNotFoundError
from ..ir import Instance
from .collection import Collection, Filter, reference_id
from .resolution import resolve_context, resolve_id

logger = logging.getLogger(__name__)


class TypeAccessor:
    """Callable accessor for one type: ``ctx.Startup("acme")`` or ``ctx.Startup({...})``."""

    def __init__(self, context: QueryContext, type_name: str):
        self._context = context
        self.type_name = type_name

    def __repr__(self) -> str:
        return f"TypeAccessor({self.type_name!r})"

    def __call__(self, arg: str | Filter | None = None) -> Any:
        if isinstance(arg, str):
            return self._context.lookup(self.type_name, arg)
        return self._context.query(self.type_name, arg)

    def all(self) -> Collection[Instance]:
        return self._context.query(self.type_name)


class QueryContext:
    """
    In-process instance graph with lazy queries.

    Attributes:
        context: Resolved context URL used to absolutise relative ids
    """

    def __init__(
        self,
        context: str | None = None,
        *,
        host: str | None = None,
        environ: Mapping[str, str] | None = None,
        config: NounsConfig | None = None,
        instances: Iterable[Instance | Mapping[str, Any]] = (),
    ):
        self.context = resolve_context(context, host=host, environ=environ, config=config)
        self._store: dict[str, Instance] = {}
        for instance in instances:
            self.register(instance)

    def __repr__(self) -> str:
        return f"QueryContext({self.context!r}, instances={len(self._store)})"

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, id: object) -> bool:
        return isinstance(id, str) and self.resolve(id) in self._store

    def __getattr__(self, name: str) -> TypeAccessor:
        # Capitalised attribute names are type accessors.
        if name[:1].isupper():
            return TypeAccessor(self, name)
        raise AttributeError(f"{type(self).__name__} has no attribute {name!r}")

    def type(self, name: str) -> TypeAccessor:
        return TypeAccessor(self, name)

    def types(self) -> list[str]:
        return sorted({instance.type for instance in self._store.values()})

    def resolve(self, id: str) -> str:
        return resolve_id(id, self.context)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def register(self, instance: Instance | Mapping[str, Any]) -> Instance:
        """Add or replace an instance; readable immediately afterwards.

        Mappings are accepted in serialized form (``$id``, ``$type``, values).
        """
        if not isinstance(instance, Instance):
            instance = _instance_from_mapping(instance)
        stored = instance.model_copy(
            update={"id": self.resolve(instance.id), "context": instance.context or self.context},
        )
        self._store[stored.id] = stored
        logger.debug("Registered %s %s", stored.type, stored.id)
        return stored

    def remove(self, id: str) -> bool:
        return self._store.pop(self.resolve(id), None) is not None

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Instance:
        """Instance by absolute or context-relative id.

        Raises:
            InstanceNotFoundError: nothing is registered under the id
        """
        instance = self._store.get(self.resolve(id))
        if instance is None:
            raise InstanceNotFoundError(self.resolve(id))
        return instance

    def query(self, type_name: str, filter: Filter | None = None) -> Collection[Instance]:
        """Lazy collection of instances of *type_name*, optionally filtered."""
        store = self._store
        collection = Collection(lambda: [i for i in store.values() if i.type == type_name])
        return collection.where(filter)

    def lookup(self, type_name: str, key: str) -> Instance:
        """Exact id first, then a slug or id-suffix match within the type.

        Raises:
            InstanceNotFoundError: no instance matched
        """
        exact = self._store.get(self.resolve(key))
        if exact is not None and exact.type == type_name:
            return exact

        suffix = "/" + key.strip("/")
        for instance in self.query(type_name):
            if instance.slug == key or instance.id.endswith(suffix):
                return instance
        return self.get(key)

    def follow(self, instance: Instance, field: str) -> Collection[Instance]:
        """Instances referenced by *field* (an id, an instance, or a list of either)."""
        value = instance.value(field)
        references = value if isinstance(value, (list, tuple)) else [value]

        def resolve_all() -> list[Instance]:
            found: list[Instance] = []
            for reference in references:
                ref = reference_id(reference)
                if isinstance(ref, str) and ref in self:
                    found.append(self.get(ref))
            return found

        return Collection(resolve_all)


def _instance_from_mapping(data: Mapping[str, Any]) -> Instance:
    if "$id" not in data or "$type" not in data:
        raise ValueError("Instance mappings need $id and $type")
    values = data.get("values")
    if not isinstance(values, Mapping):
        values = {k: v for k, v in data.items() if not k.startswith("$")}
    return Instance(
        id=str(data["$id"]),
        type=str(data["$type"]),
        version=int(data.get("$version") or 1),
        data=dict(values),
        context=data.get("$context"),
    )
