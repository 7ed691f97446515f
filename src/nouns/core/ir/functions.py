"""
Function types for nouns IR.

Compute functions are a tagged variant: a ``FunctionRef`` wraps an in-process
callable (with its source text when it could be captured), a ``CodeBlob``
holds opaque code text that is only ever executed through a generated module.
Generative functions are descriptors for an external generation collaborator.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class FunctionRef(BaseModel):
    """
    An in-process callable.

    Attributes:
        fn: The callable itself
        source: Captured source text (lambda expression or ``def`` block)
    """

    kind: Literal["callable"] = "callable"
    fn: Callable[..., Any]
    source: str | None = None

    model_config = ConfigDict(frozen=True)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.fn(*args, **kwargs)

    @property
    def code(self) -> str | None:
        return self.source


class CodeBlob(BaseModel):
    """
    Opaque code text.

    Examples:
        - CodeBlob(code="lambda r: r['mrr'] * 12")
        - CodeBlob(code="stars + (forks * 2)")   # formula over record fields
    """

    kind: Literal["code"] = "code"
    code: str

    model_config = ConfigDict(frozen=True)


ComputeFunction = FunctionRef | CodeBlob


class GenerativeFunctionDescriptor(BaseModel):
    """
    A prompt template for the generation collaborator.

    Attributes:
        prompt: Template containing ``{variable}`` placeholders
        output_schema: Optional structured output shape
        model: Optional model hint (``best``, ``fast``, ``cost``, ...)
        variables: Placeholder names in order of appearance
    """

    prompt: str
    output_schema: dict[str, Any] | None = None
    model: str | None = None
    variables: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def render(self, values: dict[str, Any]) -> str:
        """Substitute known variables, leaving unknown placeholders intact."""
        rendered = self.prompt
        for name in self.variables:
            if name in values and values[name] is not None:
                rendered = rendered.replace("{" + name + "}", str(values[name]))
        return rendered


class DeferredGeneration(BaseModel):
    """Returned by ``Runtime.call`` for generative functions; never executed in-process."""

    name: str
    prompt: str
    args: tuple[Any, ...] = ()
    output_schema: dict[str, Any] | None = None
    model: str | None = None
    variables: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class DeferredExecution(BaseModel):
    """Returned by ``Runtime.call`` for code blobs restored from serialized form."""

    name: str
    code: str
    args: tuple[Any, ...] = ()

    model_config = ConfigDict(frozen=True)
