"""
Instance types for nouns IR.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Instance(BaseModel):
    """
    A concretely identified value of a definition's type.

    Attributes:
        id: Identity (absolute URL or storage key)
        type: Type name
        version: Definition version the data was written under
        data: Payload
        context: Vocabulary namespace, when known
    """

    kind: Literal["instance"] = "instance"
    id: str
    type: str
    version: int = 1
    data: dict[str, Any] = Field(default_factory=dict)
    context: str | None = None

    model_config = ConfigDict(frozen=True)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def value(self, key: str, default: Any = None) -> Any:
        """Read a payload value."""
        return self.data.get(key, default)

    @property
    def slug(self) -> str:
        """Last path segment of the id, or the ``slug`` payload value."""
        explicit = self.data.get("slug")
        if isinstance(explicit, str) and explicit:
            return explicit
        return self.id.rstrip("/").rsplit("/", 1)[-1]


class InstanceChange(BaseModel):
    """Payload passed to ``on<Type>Updated`` handlers."""

    previous: Instance | None = None
    current: Instance

    model_config = ConfigDict(frozen=True)
