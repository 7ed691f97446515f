"""
Entity definition types for nouns IR.

An ``EntityDefinition`` aggregates everything parsed out of one raw
definition mapping: fields, cascades, handlers and migrations.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .cascades import CascadeDescriptor
from .fields import FieldDescriptor, SourceKind
from .functions import CodeBlob, FunctionRef, GenerativeFunctionDescriptor

Handler = Callable[..., Any]
FunctionDef = FunctionRef | CodeBlob | GenerativeFunctionDescriptor


class EnrichmentSource(BaseModel):
    """
    An external API declared via ``$enrich``.

    Two patterns are supported:
        - inline: EnrichmentSource(source="github://repos/{owner}/{name}", cache="1h")
        - resource: EnrichmentSource(resource="->GitHubRepoResource",
                                     params={"owner": "{owner}", "repo": "{name}"})
    """

    source: str | None = None
    resource: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    cache: str | None = None
    auth: str | None = None
    prefix: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def endpoint(self) -> str:
        """The source URI or resource reference, whichever is declared."""
        return self.source or self.resource or ""


class EntityDefinition(BaseModel):
    """
    A named, versioned entity type plus its behaviour.

    Attributes:
        type: Type name
        id: Identity; present only for instance definitions
        version: Definition version (>= 1)
        context: Vocabulary namespace
        extends: Parent type name or external URI
        seed: One-time reference data import declaration
        enrich: External API sources feeding Sync fields
        fields: Parsed fields in declaration order
        cascades: Link fields' relationships, keyed by field name
        events: ``on<Type><Event>`` handlers
        schedules: ``every<Interval>`` handlers
        crons: Handlers keyed by 5-token cron expression
        migrations: Handlers keyed by target version
    """

    type: str
    id: str | None = None
    version: int = 1
    context: str | None = None
    extends: str | None = None
    seed: Any = None
    enrich: list[EnrichmentSource] = Field(default_factory=list)
    fields: dict[str, FieldDescriptor] = Field(default_factory=dict)
    cascades: dict[str, CascadeDescriptor] = Field(default_factory=dict)
    events: dict[str, Handler] = Field(default_factory=dict)
    schedules: dict[str, Handler] = Field(default_factory=dict)
    crons: dict[str, Handler] = Field(default_factory=dict)
    migrations: dict[int, Handler] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def is_instance(self) -> bool:
        return self.id is not None

    @property
    def functions(self) -> dict[str, FunctionDef]:
        """Compute and Generate fields, callable by name through a runtime."""
        functions: dict[str, FunctionDef] = {}
        for name, field in self.fields.items():
            if field.source == SourceKind.COMPUTE and field.compute is not None:
                functions[name] = field.compute
            elif field.source == SourceKind.GENERATE and field.generation is not None:
                functions[name] = field.generation
        return functions

    def fields_by_source(self, source: SourceKind) -> dict[str, FieldDescriptor]:
        """Fields with the given source kind."""
        return {name: f for name, f in self.fields.items() if f.source == source}
