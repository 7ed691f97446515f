"""
Handler context passed to event, schedule and migration handlers.

Usage inside a handler:

    def onStartupCreated(startup, ctx):
        ctx.put(startup.id, {**startup.data, "status": "new"})
        ctx.emit("onStartupScored", ctx.score(startup))   # function field

    async def enrich_all(ctx):
        for startup in ctx.instances():
            await ctx.cascade(startup, "icps")
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..descriptor_parser import extract_variables
from ..errors import CascadeNotFoundError, InstanceNotFoundError, MissingCollaboratorError
from ..ir import EnrichmentSource, FieldDescriptor, GenerativeFunctionDescriptor, Instance, PrimitiveType, SourceKind
from .collaborators import GenerationRequest

if TYPE_CHECKING:
    from .runtime import Runtime
    from .storage import Storage

logger = logging.getLogger(__name__)

RESOURCE_ALIAS = "resource"

IDENTITY_MEMBERS = frozenset({"id", "type", "version", "extends", "context"})


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """Substitute ``{variable}`` placeholders that have a value."""
    return GenerativeFunctionDescriptor(prompt=template, variables=extract_variables(template)).render(dict(values))


class HandlerContext:
    """Identity, CRUD mirrors, async hooks and function access for handlers.

    Function fields are exposed as attributes and take precedence over the
    context's own members, so a Compute field named ``search`` replaces the
    ``search`` hook. Identity members are never replaced; a function field
    with one of those names stays reachable through ``call``.
    """

    def __init__(self, runtime: Runtime):
        self._runtime = runtime
        shadowed = sorted(IDENTITY_MEMBERS & set(runtime.definition.functions))
        if shadowed:
            logger.warning(
                "%s functions %s collide with context identity and are only reachable via call()",
                runtime.definition.type,
                ", ".join(shadowed),
            )

    def __repr__(self) -> str:
        return f"HandlerContext({self.type!r}, version={self.version})"

    def __getattribute__(self, name: str) -> Any:
        if not name.startswith("_") and name not in IDENTITY_MEMBERS:
            runtime = object.__getattribute__(self, "_runtime")
            if name in runtime.definition.functions:
                return functools.partial(runtime.call, name)
        return object.__getattribute__(self, name)

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are neither functions nor class members.
        raise AttributeError(f"{type(self).__name__} has no attribute or function {name!r}")

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._runtime.definition.id or ""

    @property
    def type(self) -> str:
        return self._runtime.definition.type

    @property
    def version(self) -> int:
        return self._runtime.definition.version

    @property
    def extends(self) -> str | None:
        return self._runtime.definition.extends

    @property
    def context(self) -> str | None:
        return self._runtime.definition.context

    @property
    def storage(self) -> Storage | None:
        return self._runtime.storage

    # -------------------------------------------------------------------------
    # CRUD mirrors
    # -------------------------------------------------------------------------

    def instances(self) -> list[Instance]:
        return self._runtime.instances()

    def create(self, id: str, data: Mapping[str, Any]) -> Instance:
        return self._runtime.create(id, data)

    def get(self, id: str) -> Instance | None:
        return self._runtime.get(id)

    def put(self, id: str, data: Mapping[str, Any]) -> Instance:
        return self._runtime.put(id, data)

    def delete(self, id: str) -> bool:
        return self._runtime.delete(id)

    def call(self, name: str, *args: Any) -> Any:
        return self._runtime.call(name, *args)

    def emit(self, event: str, payload: Any = None) -> Any:
        """Fire the handler registered for *event*; no-op when none is."""
        return self._runtime.emit(event, payload)

    # -------------------------------------------------------------------------
    # Async hooks
    # -------------------------------------------------------------------------

    async def cascade(self, instance: Instance | str, field: str) -> Any:
        """Resolve a relationship: ground fuzzy cascades, generate generative ones.

        The result is written into *field* of the instance. Pure links are not
        generated; the current value is returned.
        """
        current = self._resolve(instance)
        definition = self._runtime.definition
        cascade = definition.cascades.get(field)

        if cascade is None:
            descriptor = definition.fields.get(field)
            if descriptor is None or descriptor.source != SourceKind.FUZZY:
                raise CascadeNotFoundError(field, type_name=self.type)
            result = await self._ground(current.value(field), descriptor.fuzzy_target or "")
        elif cascade.is_fuzzy:
            value = render_template(cascade.generation_prompt, current.data) if cascade.generation_prompt else current.value(field)
            result = await self._ground(value, cascade.target_type)
        elif cascade.is_generative:
            prompt = cascade.generation_prompt or ""
            request = GenerationRequest(
                name=field,
                prompt=render_template(prompt, current.data),
                template=prompt,
                values=dict(current.data),
                target_type=cascade.target_type,
                is_array=cascade.is_array,
            )
            result = await self._generator().generate(request)
        else:
            return current.value(field)

        if result is not None:
            self._runtime.put(current.id, {**current.data, field: result})
        logger.debug("Cascade %s.%s for %s -> %r", self.type, field, current.id, result)
        return result

    async def search(self, instance: Instance | str, field: str) -> Any | None:
        """Ground a field's value against its reference type without storing it."""
        current = self._resolve(instance)
        definition = self._runtime.definition
        cascade = definition.cascades.get(field)
        descriptor = definition.fields.get(field)

        if cascade is not None:
            target = cascade.target_type
            value = current.value(field)
            if value is None and cascade.generation_prompt:
                value = render_template(cascade.generation_prompt, current.data)
        elif descriptor is not None and descriptor.fuzzy_target:
            target = descriptor.fuzzy_target
            value = current.value(field)
        else:
            raise CascadeNotFoundError(field, type_name=self.type)

        return await self._ground(value if value is not None else current.slug, target)

    async def enrich(self, instance: Instance | str) -> dict[str, Any]:
        """Fetch every ``$enrich`` source and write mapped Sync fields.

        Returns:
            The field values that were written.
        """
        current = self._resolve(instance)
        sources = self._runtime.definition.enrich
        if not sources:
            return {}
        enricher = self._runtime.enricher
        if enricher is None:
            raise MissingCollaboratorError("enricher", type_name=self.type)

        payloads: dict[str, dict[str, Any]] = {}
        for source in sources:
            params = {k: render_template(v, current.data) for k, v in source.params.items()}
            fetched = await enricher.fetch(source, params)
            key = _payload_key(source)
            payloads.setdefault(key, {}).update(fetched or {})

        updates: dict[str, Any] = {}
        for name, descriptor in self._runtime.definition.fields_by_source(SourceKind.SYNC).items():
            found, value = _lookup_sync(descriptor, payloads)
            if found:
                updates[name] = coerce_value(value, _sync_type(descriptor))

        if updates:
            self._runtime.put(current.id, {**current.data, **updates})
        logger.debug("Enriched %s with %d fields", current.id, len(updates))
        return updates

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _resolve(self, instance: Instance | str) -> Instance:
        if isinstance(instance, Instance):
            return instance
        found = self._runtime.get(instance)
        if found is None:
            raise InstanceNotFoundError(instance, type_name=self.type)
        return found

    def _generator(self) -> Any:
        if self._runtime.generator is None:
            raise MissingCollaboratorError("generator", type_name=self.type)
        return self._runtime.generator

    async def _ground(self, value: Any, target_type: str) -> Any | None:
        grounder = self._runtime.grounder
        if grounder is None:
            raise MissingCollaboratorError("grounder", type_name=self.type)
        return await grounder.ground(value, target_type)


def _payload_key(source: EnrichmentSource) -> str:
    return (source.prefix or RESOURCE_ALIAS).lower()


def _sync_type(descriptor: FieldDescriptor) -> PrimitiveType:
    if descriptor.item is not None:
        return descriptor.item.type
    return descriptor.type


def _lookup_sync(descriptor: FieldDescriptor, payloads: dict[str, dict[str, Any]]) -> tuple[bool, Any]:
    """Follow ``resource.stars`` (or ``<prefix>.stars``) through fetched payloads."""
    path = (descriptor.sync_path or "").split(".")
    if len(path) < 2:
        return False, None
    payload = payloads.get(path[0].lower())
    if payload is None:
        return False, None
    current: Any = payload
    for segment in path[1:]:
        if not isinstance(current, Mapping) or segment not in current:
            return False, None
        current = current[segment]
    return True, current


def coerce_value(value: Any, primitive: PrimitiveType) -> Any:
    """Coerce a fetched value to a field's primitive type where that is unambiguous."""
    if value is None:
        return None
    if primitive == PrimitiveType.NUMBER and isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() and "." not in value else number
    if primitive == PrimitiveType.BOOLEAN and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    if primitive == PrimitiveType.BOOLEAN and isinstance(value, int):
        return bool(value)
    return value
