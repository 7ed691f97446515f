"""
nouns - declarative entity definitions with a versioned runtime.

Define entity types from compact field descriptors, extend them, bind them
to storage, and query instances across types.
"""

from __future__ import annotations

from ._version import get_version
from .core import builder, ir
from .core.codegen import generate_module
from .core.errors import (
    DefinitionError,
    MigrationError,
    NotFoundError,
    NounsError,
    RuntimeStateError,
    VersionConflictError,
)
from .core.factory import Definition, define, is_instance, is_type
from .core.query import Collection, QueryContext
from .core.runtime import MemoryStorage, Runtime, RuntimeState
from .core.serialize import parse, serialize, stringify

__version__ = get_version()

__all__ = [
    "__version__",
    "builder",
    "ir",
    # Definitions
    "Definition",
    "define",
    "is_instance",
    "is_type",
    # Runtime
    "MemoryStorage",
    "Runtime",
    "RuntimeState",
    # Query
    "Collection",
    "QueryContext",
    # Serialization
    "generate_module",
    "parse",
    "serialize",
    "stringify",
    # Errors
    "DefinitionError",
    "MigrationError",
    "NotFoundError",
    "NounsError",
    "RuntimeStateError",
    "VersionConflictError",
]
