"""
Builder API for references, queries, aggregations and fuzzy grounding.

Usage:
    from nouns.core import builder as b

    Business = define({
        "$type": "Business",
        "business": b.ref("Business"),                       # link
        "stripe": b.ref("Stripe", "Account"),                # sync (external source)
        "stripeBalance": b.ref("stripe", "balance"),         # sync (field path)
        "customers": b.ref("Customer").where(lambda c: c["business"]),
        "mrr": b.sum(b.ref("subscriptions", "amount")),
        "customerCount": b.count(b.ref("customers")),
        "industry": b.fuzzy(b.ref("Industry")),
    })

The aggregate helpers deliberately share names with builtins; import the
module rather than the functions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from .ir.fields import AggregateFunction

EXTERNAL_SOURCES = frozenset(
    {
        "Stripe",
        "Github",
        "Google",
        "Vercel",
        "NPM",
        "DNS",
        "WHOIS",
        "Slack",
        "Discord",
        "Linear",
        "Notion",
        "Airtable",
    }
)


class Ref(BaseModel):
    """A path reference: a type name, an external resource, or a field path."""

    path: tuple[str, ...]

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return ".".join(self.path)

    def __getattr__(self, name: str) -> Ref:
        if name.startswith("_"):
            raise AttributeError(name)
        return Ref(path=(*self.path, name))

    @property
    def root(self) -> str:
        return self.path[0] if self.path else ""

    @property
    def is_external(self) -> bool:
        return self.root in EXTERNAL_SOURCES

    @property
    def is_type_reference(self) -> bool:
        """Single capitalised segment naming another type."""
        return len(self.path) == 1 and self.root[:1].isupper() and not self.is_external

    def where(self, predicate: Callable[..., Any]) -> Query:
        """Instances of this type selected by *predicate*."""
        return Query(target=str(self), predicate=predicate)


class Query(BaseModel):
    """``ref(T).where(fn)``: a relationship realised by a filter function."""

    target: str
    predicate: Callable[..., Any]

    model_config = ConfigDict(frozen=True)


class Aggregate(BaseModel):
    """An aggregation over a referenced collection."""

    function: AggregateFunction
    path: str

    model_config = ConfigDict(frozen=True)


class FuzzyRef(BaseModel):
    """Ground a value against a reference type by similarity."""

    target: str

    model_config = ConfigDict(frozen=True)


def ref(*path: str) -> Ref:
    """Build a reference; dotted segments are split."""
    segments: list[str] = []
    for part in path:
        segments.extend(p for p in part.split(".") if p)
    return Ref(path=tuple(segments))


def _aggregate(function: AggregateFunction, target: Ref | str) -> Aggregate:
    return Aggregate(function=function, path=str(target))


def sum(target: Ref | str) -> Aggregate:  # noqa: A001
    return _aggregate(AggregateFunction.SUM, target)


def count(target: Ref | str) -> Aggregate:
    return _aggregate(AggregateFunction.COUNT, target)


def avg(target: Ref | str) -> Aggregate:
    return _aggregate(AggregateFunction.AVG, target)


def min(target: Ref | str) -> Aggregate:  # noqa: A001
    return _aggregate(AggregateFunction.MIN, target)


def max(target: Ref | str) -> Aggregate:  # noqa: A001
    return _aggregate(AggregateFunction.MAX, target)


def fuzzy(target: Ref | str) -> FuzzyRef:
    return FuzzyRef(target=str(target))
