"""Core nouns functionality: IR, parsers, factory, runtime, query, serialization."""

from . import builder, ir
from .codegen import generate_module
from .config import CodegenConfig, NounsConfig, load_config
from .definition_parser import parse_definition
from .descriptor_parser import parse_cascade, parse_field
from .errors import (
    CascadeNotFoundError,
    DefinitionError,
    FunctionNotFoundError,
    InstanceNotFoundError,
    MigrationError,
    MissingCollaboratorError,
    NotFoundError,
    NounsError,
    RuntimeStateError,
    VersionConflictError,
)
from .factory import Definition, define, is_instance, is_type
from .serialize import parse, serialize, stringify

__all__ = [
    "builder",
    "ir",
    "parse_field",
    "parse_cascade",
    "parse_definition",
    "Definition",
    "define",
    "is_type",
    "is_instance",
    "serialize",
    "stringify",
    "parse",
    "generate_module",
    "NounsConfig",
    "CodegenConfig",
    "load_config",
    "NounsError",
    "NotFoundError",
    "InstanceNotFoundError",
    "FunctionNotFoundError",
    "CascadeNotFoundError",
    "DefinitionError",
    "VersionConflictError",
    "MigrationError",
    "RuntimeStateError",
    "MissingCollaboratorError",
]
