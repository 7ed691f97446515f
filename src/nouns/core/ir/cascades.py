"""
Relationship (cascade) types for nouns IR.

Cascade operators:
    ->   outgoing (link, or generate when a prompt precedes it)
    <-   incoming (references pointing at this type)
    <->  bidirectional
    ~>   fuzzy outgoing (find similar existing, no duplicates)
    <~   fuzzy incoming (similarity search)
    <~>  fuzzy bidirectional
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from .functions import CodeBlob, FunctionRef


class CascadeOperator(StrEnum):
    """Relationship operators, longest token first."""

    FUZZY_BIDIRECTIONAL = "<~>"
    BIDIRECTIONAL = "<->"
    FUZZY_INCOMING = "<~"
    FUZZY_OUTGOING = "~>"
    INCOMING = "<-"
    OUTGOING = "->"

    @property
    def is_fuzzy(self) -> bool:
        return "~" in self.value

    @property
    def is_bidirectional(self) -> bool:
        return self in (CascadeOperator.BIDIRECTIONAL, CascadeOperator.FUZZY_BIDIRECTIONAL)

    @property
    def is_incoming(self) -> bool:
        return self in (CascadeOperator.INCOMING, CascadeOperator.FUZZY_INCOMING)


class FilterOperator(StrEnum):
    """Comparators allowed inside a ``[field<op>value]`` filter clause."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="


class FilterCondition(BaseModel):
    """
    A single filter clause.

    Examples:
        - status=active  -> FilterCondition(field="status", operator=EQ, value="active")
        - mrr>1000       -> FilterCondition(field="mrr", operator=GT, value=1000)
    """

    field: str
    operator: FilterOperator
    value: str | int | float | bool

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if isinstance(self.value, bool):
            rendered = "true" if self.value else "false"
        else:
            rendered = str(self.value)
        return f"{self.field}{self.operator.value}{rendered}"


class CascadeDescriptor(BaseModel):
    """
    A declared relationship to another type.

    Attributes:
        operator: Relationship operator
        target_type: Type on the other end
        predicate: Field on the other type realising an incoming reference
        route_param: Makes the field's instances independently addressable
        filters: Parsed filter clauses
        rejected_filters: Clauses that did not parse and were dropped
        generation_prompt: Text before the operator; present means generative
        is_array: Declared inside a single-element list
        where: Filter function from ``ref(T).where(fn)``
    """

    operator: CascadeOperator
    target_type: str
    predicate: str | None = None
    route_param: str | None = None
    filters: list[FilterCondition] = Field(default_factory=list)
    rejected_filters: list[str] = Field(default_factory=list)
    generation_prompt: str | None = None
    is_array: bool = False
    where: FunctionRef | CodeBlob | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_fuzzy(self) -> bool:
        return self.operator.is_fuzzy

    @property
    def is_bidirectional(self) -> bool:
        return self.operator.is_bidirectional

    @property
    def is_generative(self) -> bool:
        return bool(self.generation_prompt)

    @property
    def description(self) -> str:
        """Prompt text, or the target reference for pure links."""
        if self.generation_prompt:
            return self.generation_prompt
        if self.predicate:
            return f"{self.target_type}.{self.predicate}"
        return self.target_type

    def to_grammar(self) -> str:
        """Render back to the cascade mini-grammar."""
        target = self.target_type
        if self.predicate:
            target += f".{self.predicate}"
        if self.filters:
            target += "[" + ", ".join(str(f) for f in self.filters) + "]"
        text = f"{self.operator.value}{target}"
        if self.generation_prompt:
            text = f"{self.generation_prompt} {text}"
        if self.route_param:
            text = f":{self.route_param} {text}"
        return text
