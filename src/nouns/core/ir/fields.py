"""
Field descriptor types for nouns IR.

Every field has exactly one source kind (where its data comes from) and one
primitive type (what shape the data takes).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .cascades import CascadeDescriptor
from .functions import CodeBlob, FunctionRef, GenerativeFunctionDescriptor


class SourceKind(StrEnum):
    """Where a field's data comes from."""

    INPUT = "input"  # user provides
    GENERATE = "generate"  # AI creates from a prompt
    COMPUTE = "compute"  # derived in-process
    SYNC = "sync"  # external API
    AGGREGATE = "aggregate"  # rolled up from related instances
    FUZZY = "fuzzy"  # grounded against reference data
    LINK = "link"  # relationship to another type


class PrimitiveType(StrEnum):
    """Shape of a field's value."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"
    OBJECT = "object"
    ARRAY = "array"


class AggregateFunction(StrEnum):
    """Supported aggregate operations."""

    SUM = "sum"
    COUNT = "count"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class AggregateSpec(BaseModel):
    """
    An aggregation over related instances.

    Examples:
        - sum(subscriptions.amount) -> AggregateSpec(function=SUM, path="subscriptions.amount")
        - count(customers)          -> AggregateSpec(function=COUNT, path="customers")

    ``function`` is None when an explicit ``$aggregate`` expression could not
    be read; the raw text is then kept in ``path``.
    """

    function: AggregateFunction | None = None
    path: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if self.function is None:
            return self.path
        return f"{self.function.value}({self.path})"


class FieldDescriptor(BaseModel):
    """
    A parsed field.

    Attributes:
        name: Field identifier
        description: Human-readable description (type suffix stripped)
        source: Source kind
        type: Primitive type
        enum_values: Alternatives for enum fields
        nested: Child descriptors for object fields
        item: Element descriptor for array fields
        generation: Prompt, schema and variables for Generate fields
        cascade: Relationship for Link fields
        sync_path: Source path for Sync fields
        aggregate: Aggregation for Aggregate fields
        fuzzy_target: Reference type for Fuzzy fields
        compute: Function for Compute fields
        options: Extra keys from an explicit marker (required, default, ...)
        issues: Diagnostics recorded when the value could only be partly read
    """

    name: str
    description: str
    source: SourceKind
    type: PrimitiveType = PrimitiveType.STRING
    enum_values: list[str] | None = None
    nested: dict[str, FieldDescriptor] | None = None
    item: FieldDescriptor | None = None
    generation: GenerativeFunctionDescriptor | None = None
    cascade: CascadeDescriptor | None = None
    sync_path: str | None = None
    aggregate: AggregateSpec | None = None
    fuzzy_target: str | None = None
    compute: FunctionRef | CodeBlob | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_array(self) -> bool:
        return self.type == PrimitiveType.ARRAY

    @property
    def variables(self) -> list[str]:
        """Placeholder names for Generate fields."""
        return list(self.generation.variables) if self.generation else []

    @property
    def prompt(self) -> str | None:
        return self.generation.prompt if self.generation else None

    @property
    def is_required(self) -> bool:
        return bool(self.options.get("required", False))

    @property
    def is_readonly(self) -> bool:
        """Sync, Aggregate and Compute fields cannot be set directly."""
        if "readonly" in self.options:
            return bool(self.options["readonly"])
        return self.source in (SourceKind.SYNC, SourceKind.AGGREGATE, SourceKind.COMPUTE)
