"""Query context: lazy traversal over a graph of instances."""

from .collection import Collection
from .context import QueryContext, TypeAccessor
from .resolution import DEFAULT_CONTEXT, resolve_context, resolve_id

__all__ = [
    "DEFAULT_CONTEXT",
    "Collection",
    "QueryContext",
    "TypeAccessor",
    "resolve_context",
    "resolve_id",
]
