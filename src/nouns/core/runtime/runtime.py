"""
Runtime: binds a Definition to storage and runs its lifecycle.

State machine:

    UNBOUND --bind--> STALE (stored < definition) --> MIGRATING --> BOUND
                 \\--------------- stored == definition -------------/

CRUD is valid while BOUND, and for migration handlers while MIGRATING.
Handlers fire in-process, synchronously, before the CRUD call returns.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..errors import (
    FunctionNotFoundError,
    MigrationError,
    NotFoundError,
    RuntimeStateError,
    VersionConflictError,
)
from ..factory import Definition
from ..ir import (
    CodeBlob,
    DeferredExecution,
    DeferredGeneration,
    FunctionRef,
    Handler,
    Instance,
    InstanceChange,
)
from ..serialize import serialize
from .collaborators import Enricher, Generator, Grounder
from .context import HandlerContext
from .schedules import cron_due, interval_due
from .storage import DEFINITION_KEY, RESERVED_PREFIX, VERSION_KEY, Storage

logger = logging.getLogger(__name__)

LastRun = datetime | Mapping[str, datetime | None] | None


class RuntimeState(StrEnum):
    UNBOUND = "unbound"
    STALE = "stale"
    MIGRATING = "migrating"
    BOUND = "bound"


CRUD_STATES = frozenset({RuntimeState.BOUND, RuntimeState.MIGRATING})


class Runtime:
    """
    A Definition bound (or about to be bound) to storage.

    Attributes:
        definition: The definition being run
        generator: Generation collaborator for generative cascades
        grounder: Grounding collaborator for fuzzy fields and cascades
        enricher: Enrichment collaborator for ``$enrich`` sources
        migrations_run: Target versions migrated by this runtime, in order
    """

    def __init__(
        self,
        definition: Definition,
        *,
        generator: Generator | None = None,
        grounder: Grounder | None = None,
        enricher: Enricher | None = None,
    ):
        self.definition = definition
        self.generator = generator
        self.grounder = grounder
        self.enricher = enricher
        self.migrations_run: list[int] = []
        self._storage: Storage | None = None
        self._state = RuntimeState.UNBOUND
        self._context = HandlerContext(self)

    def __repr__(self) -> str:
        return f"Runtime({self.type!r}, state={self._state.value})"

    @property
    def type(self) -> str:
        return self.definition.type

    @property
    def version(self) -> int:
        return self.definition.version

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def storage(self) -> Storage | None:
        return self._storage

    @property
    def context(self) -> HandlerContext:
        return self._context

    # -------------------------------------------------------------------------
    # Binding and migrations
    # -------------------------------------------------------------------------

    def stored_version(self) -> int:
        """Version recorded in bound storage; 0 when none is recorded."""
        if self._storage is None:
            return 0
        return int(self._storage.get(VERSION_KEY) or 0)

    def bind(self, storage: Storage) -> Runtime:
        """Bind to *storage*, running pending migrations in version order.

        Raises:
            VersionConflictError: storage was written by a newer definition
            MigrationError: a migration handler failed; earlier ones stay applied
        """
        self._storage = storage
        stored = self.stored_version()
        current = self.version

        if stored > current:
            self._state = RuntimeState.UNBOUND
            self._storage = None
            raise VersionConflictError(
                f"Stored version {stored} is newer than definition version {current}",
                stored=stored,
                current=current,
                type_name=self.type,
            )

        if stored < current:
            self._state = RuntimeState.STALE
            self._migrate(storage, stored, current)

        storage.put(VERSION_KEY, current)
        storage.put(DEFINITION_KEY, serialize(self.definition))
        self._state = RuntimeState.BOUND
        logger.debug("Bound %s v%d", self.type, current)
        return self

    def _migrate(self, storage: Storage, stored: int, current: int) -> None:
        pending = sorted(v for v in self.definition.migrations if stored < v <= current)
        applied = stored
        self._state = RuntimeState.MIGRATING
        for target in pending:
            logger.info("%s: running migration to version %d", self.type, target)
            try:
                self.definition.migrations[target](self._context)
            except Exception as e:
                self._state = RuntimeState.STALE
                logger.error("%s: migration to version %d failed: %s", self.type, target, e)
                raise MigrationError(target, applied, type_name=self.type) from e
            storage.put(VERSION_KEY, target)
            applied = target
            self.migrations_run.append(target)

    def _require_bound(self, operation: str, allowed: frozenset[RuntimeState] = CRUD_STATES) -> Storage:
        if self._state not in allowed or self._storage is None:
            raise RuntimeStateError(
                f"Cannot {operation} while runtime is {self._state.value}",
                type_name=self.type,
            )
        return self._storage

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def _to_instance(self, id: str, payload: Mapping[str, Any]) -> Instance:
        version = payload.get(VERSION_KEY)
        return Instance(
            id=id,
            type=self.type,
            version=version if isinstance(version, int) and version > 0 else self.version,
            data={k: v for k, v in payload.items() if k != VERSION_KEY},
            context=self.definition.context,
        )

    def _event_name(self, suffix: str) -> str:
        return "on" + re.sub(r"\W", "", self.type) + suffix

    def instances(self) -> list[Instance]:
        """All stored instances, ordered as storage lists them."""
        storage = self._require_bound("list instances")
        return [
            self._to_instance(key, value)
            for key, value in storage.list().items()
            if not key.startswith(RESERVED_PREFIX) and isinstance(value, Mapping)
        ]

    def get(self, id: str) -> Instance | None:
        storage = self._require_bound("get")
        if id.startswith(RESERVED_PREFIX):
            return None
        payload = storage.get(id)
        if not isinstance(payload, Mapping):
            return None
        return self._to_instance(id, payload)

    def create(self, id: str, data: Mapping[str, Any]) -> Instance:
        """Store *data* tagged with the current version and fire ``on<Type>Created``."""
        storage = self._require_bound("create")
        self._check_id(id)
        payload = {**data, VERSION_KEY: self.version}
        storage.put(id, payload)
        instance = self._to_instance(id, payload)
        logger.debug("Created %s %s", self.type, id)
        self._fire(self._event_name("Created"), instance)
        return instance

    def put(self, id: str, data: Mapping[str, Any]) -> Instance:
        """Full replace; fires ``on<Type>Updated`` with previous and current."""
        storage = self._require_bound("put")
        self._check_id(id)
        previous = self.get(id)
        payload = {**data, VERSION_KEY: self.version}
        storage.put(id, payload)
        instance = self._to_instance(id, payload)
        logger.debug("Updated %s %s", self.type, id)
        self._fire(self._event_name("Updated"), InstanceChange(previous=previous, current=instance))
        return instance

    def delete(self, id: str) -> bool:
        """Remove an instance; returns False when it did not exist."""
        storage = self._require_bound("delete")
        existing = self.get(id)
        if existing is None:
            return False
        storage.delete(id)
        logger.debug("Deleted %s %s", self.type, id)
        self._fire(self._event_name("Deleted"), existing)
        return True

    def _check_id(self, id: str) -> None:
        if not id or id.startswith(RESERVED_PREFIX):
            raise ValueError(f"Instance id must be non-empty and not start with {RESERVED_PREFIX!r}: {id!r}")

    # -------------------------------------------------------------------------
    # Events and functions
    # -------------------------------------------------------------------------

    def _fire(self, event: str, payload: Any) -> Any:
        handler = self.definition.events.get(event)
        if handler is None:
            return None
        logger.debug("Firing %s", event)
        return handler(payload, self._context)

    def emit(self, event: str, payload: Any = None) -> Any:
        """Invoke the handler registered for *event*, if any."""
        return self._fire(event, payload)

    def call(self, name: str, *args: Any) -> Any:
        """Call a function field by name.

        Callables execute in-process. Code restored from serialized form and
        generative functions come back as deferred descriptors.

        Raises:
            FunctionNotFoundError: *name* is not a Compute or Generate field
        """
        fn = self.definition.functions.get(name)
        if fn is None:
            raise FunctionNotFoundError(name, type_name=self.type)
        if isinstance(fn, FunctionRef):
            return fn(*args)
        if isinstance(fn, CodeBlob):
            return DeferredExecution(name=name, code=fn.code, args=args)
        return DeferredGeneration(
            name=name,
            prompt=fn.prompt,
            args=args,
            output_schema=fn.output_schema,
            model=fn.model,
            variables=list(fn.variables),
        )

    # -------------------------------------------------------------------------
    # Schedules
    # -------------------------------------------------------------------------

    def _schedule_handler(self, name: str) -> Handler:
        handler = self.definition.schedules.get(name) or self.definition.crons.get(name)
        if handler is None:
            raise NotFoundError("Schedule", name, type_name=self.type)
        return handler

    def run_schedule(self, name: str) -> Any:
        """Run one schedule or cron handler by name."""
        handler = self._schedule_handler(name)
        self._require_bound(f"run schedule {name}", frozenset({RuntimeState.BOUND}))
        logger.debug("Running schedule %s", name)
        return handler(self._context)

    def due_schedules(self, last_run: LastRun, now: datetime) -> list[str]:
        """``every<Interval>`` handlers whose interval has elapsed."""
        return [name for name in self.definition.schedules if interval_due(name, _last_run_for(last_run, name), now)]

    def due_crons(self, last_run: LastRun, now: datetime) -> list[str]:
        """Cron handlers with a matching minute in ``(last_run, now]``."""
        return [name for name in self.definition.crons if cron_due(name, _last_run_for(last_run, name), now)]

    def tick(self, last_run: LastRun, now: datetime) -> list[str]:
        """Run every due schedule and cron; returns the names that ran."""
        due = self.due_schedules(last_run, now) + self.due_crons(last_run, now)
        for name in due:
            self.run_schedule(name)
        return due


def _last_run_for(last_run: LastRun, name: str) -> datetime | None:
    if isinstance(last_run, Mapping):
        return last_run.get(name)
    return last_run
