"""
External collaborator interfaces used by the async handler-context hooks.

The core only builds requests; generation, grounding and fetching happen
outside the process.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..ir import EnrichmentSource


class GenerationRequest(BaseModel):
    """
    A resolved generation request.

    Attributes:
        name: Field or function being generated
        prompt: Template with known ``{variable}`` placeholders substituted
        template: The unrendered template
        values: Values the placeholders were resolved from
        output_schema: Optional structured output shape
        model: Optional model hint
        target_type: Type to synthesise, for generative cascades
        is_array: Whether a list of values is expected
    """

    name: str
    prompt: str
    template: str
    values: dict[str, Any] = Field(default_factory=dict)
    output_schema: dict[str, Any] | None = None
    model: str | None = None
    target_type: str | None = None
    is_array: bool = False

    model_config = ConfigDict(frozen=True)


@runtime_checkable
class Generator(Protocol):
    async def generate(self, request: GenerationRequest) -> Any: ...


@runtime_checkable
class Grounder(Protocol):
    async def ground(self, value: Any, target_type: str) -> Any | None:
        """Best similarity match for *value* among *target_type* instances, or None."""
        ...


@runtime_checkable
class Enricher(Protocol):
    async def fetch(self, source: EnrichmentSource, params: dict[str, str]) -> dict[str, Any]:
        """Fetch and transform external data for one declared source."""
        ...
