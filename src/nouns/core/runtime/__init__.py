"""Runtime: storage binding, migrations, CRUD, handlers and schedules."""

from .collaborators import Enricher, GenerationRequest, Generator, Grounder
from .context import HandlerContext
from .runtime import Runtime, RuntimeState
from .storage import DEFINITION_KEY, VERSION_KEY, MemoryStorage, Storage

__all__ = [
    "DEFINITION_KEY",
    "VERSION_KEY",
    "Enricher",
    "GenerationRequest",
    "Generator",
    "Grounder",
    "HandlerContext",
    "MemoryStorage",
    "Runtime",
    "RuntimeState",
    "Storage",
]
