"""
Definition factory and single-parent inheritance.

    Startup = define({"$type": "Startup", "name": "Company name"})

    SaaS = Startup.extend({"$type": "SaaS", "mrr": "Monthly revenue (number)"})
    acme = SaaS.instantiate("https://startups.do/acme", {"name": "Acme"})

    # Tagged-union entry point: an identity means an instance.
    result = Startup.derive({"$id": "https://startups.do/acme", "name": "Acme"})
    assert is_instance(result)
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Literal

from .definition_parser import parse_definition
from .errors import DefinitionError
from .ir import (
    CascadeDescriptor,
    EnrichmentSource,
    EntityDefinition,
    FieldDescriptor,
    FunctionDef,
    Handler,
    Instance,
    SourceKind,
)


class Definition:
    """
    A parsed, immutable definition plus the raw mapping it came from.

    Extension never mutates: ``extend`` returns a new Definition.
    """

    def __init__(self, raw: Mapping[str, Any]):
        self._raw: Mapping[str, Any] = MappingProxyType(dict(raw))
        self._entity = parse_definition(self._raw)

    def __repr__(self) -> str:
        if self.id:
            return f"Definition({self.type!r}, id={self.id!r}, version={self.version})"
        return f"Definition({self.type!r}, version={self.version})"

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def kind(self) -> Literal["type", "instance"]:
        return "instance" if self.id is not None else "type"

    @property
    def raw(self) -> Mapping[str, Any]:
        return self._raw

    @property
    def entity(self) -> EntityDefinition:
        return self._entity

    @property
    def type(self) -> str:
        return self._entity.type

    @property
    def id(self) -> str | None:
        return self._entity.id

    @property
    def version(self) -> int:
        return self._entity.version

    @property
    def context(self) -> str | None:
        return self._entity.context

    @property
    def extends(self) -> str | None:
        return self._entity.extends

    @property
    def seed(self) -> Any:
        return self._entity.seed

    @property
    def enrich(self) -> list[EnrichmentSource]:
        return self._entity.enrich

    @property
    def fields(self) -> dict[str, FieldDescriptor]:
        return self._entity.fields

    @property
    def cascades(self) -> dict[str, CascadeDescriptor]:
        return self._entity.cascades

    @property
    def functions(self) -> dict[str, FunctionDef]:
        return self._entity.functions

    @property
    def events(self) -> dict[str, Handler]:
        return self._entity.events

    @property
    def schedules(self) -> dict[str, Handler]:
        return self._entity.schedules

    @property
    def crons(self) -> dict[str, Handler]:
        return self._entity.crons

    @property
    def migrations(self) -> dict[int, Handler]:
        return self._entity.migrations

    def fields_by_source(self, source: SourceKind) -> dict[str, FieldDescriptor]:
        return self._entity.fields_by_source(source)

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def extend(self, partial: Mapping[str, Any]) -> Definition:
        """Create a child type: shallow merge with override, single parent.

        Raises:
            DefinitionError: *partial* carries an identity (use ``instantiate``)
        """
        if "$id" in partial:
            raise DefinitionError(
                "extend() creates a type; use instantiate() for identified values",
                type_name=self.type,
            )
        version = partial.get("$version") or self._raw.get("$version") or 1
        # A child type never inherits the parent's identity.
        inherited = {k: v for k, v in self._raw.items() if k != "$id"}
        return Definition({**inherited, **partial, "$extends": self.type, "$version": version})

    def instantiate(self, id: str, data: Mapping[str, Any] | None = None) -> Instance:
        """Create an instance of this type; a ``$type`` in *data* overrides the type."""
        data = dict(data or {})
        return Instance(
            id=id,
            type=data.get("$type") or self.type,
            version=self.version,
            data={k: v for k, v in data.items() if not k.startswith("$")},
            context=data.get("$context") or self.context,
        )

    def derive(self, partial: Mapping[str, Any], *, as_instance: bool = False) -> Definition | Instance:
        """Extend or instantiate, returning the tagged union.

        An identity, or ``as_instance=True``, yields an Instance; a ``$type``
        alongside the identity overrides the instance's type.
        """
        if not as_instance and "$id" not in partial:
            return self.extend(partial)
        if "$id" not in partial:
            raise DefinitionError("An instance requires $id", type_name=self.type)
        data = {k: v for k, v in partial.items() if k != "$id"}
        return self.instantiate(str(partial["$id"]), data)


def define(raw: Mapping[str, Any]) -> Definition:
    """Parse *raw* and wrap it as a Definition."""
    return Definition(raw)


def is_type(value: Any) -> bool:
    """True for definitions without identity."""
    return isinstance(value, Definition) and value.id is None


def is_instance(value: Any) -> bool:
    """True for instances and identified definitions."""
    if isinstance(value, Instance):
        return True
    return isinstance(value, Definition) and value.id is not None
