"""
nouns Intermediate Representation (IR) types.

All IR types are re-exported from this package.
"""

# Cascades
from .cascades import (
    CascadeDescriptor,
    CascadeOperator,
    FilterCondition,
    FilterOperator,
)

# Definitions
from .definition import (
    EnrichmentSource,
    EntityDefinition,
    FunctionDef,
    Handler,
)

# Fields
from .fields import (
    AggregateFunction,
    AggregateSpec,
    FieldDescriptor,
    PrimitiveType,
    SourceKind,
)

# Functions
from .functions import (
    CodeBlob,
    ComputeFunction,
    DeferredExecution,
    DeferredGeneration,
    FunctionRef,
    GenerativeFunctionDescriptor,
)

# Instances
from .instance import (
    Instance,
    InstanceChange,
)

__all__ = [
    # Cascades
    "CascadeDescriptor",
    "CascadeOperator",
    "FilterCondition",
    "FilterOperator",
    # Definitions
    "EnrichmentSource",
    "EntityDefinition",
    "FunctionDef",
    "Handler",
    # Fields
    "AggregateFunction",
    "AggregateSpec",
    "FieldDescriptor",
    "PrimitiveType",
    "SourceKind",
    # Functions
    "CodeBlob",
    "ComputeFunction",
    "DeferredExecution",
    "DeferredGeneration",
    "FunctionRef",
    "GenerativeFunctionDescriptor",
    # Instances
    "Instance",
    "InstanceChange",
]
