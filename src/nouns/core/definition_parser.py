"""
Definition parser: routes the keys of one raw definition mapping.

Reserved keys never become fields:

    $type, $id, $version, ...   identity and metadata
    onStartupCreated            event handler (callable named on[A-Z]...)
    everyHour, every5Minutes    schedule handler (callable named every[A-Z0-9]...)
    "0 9 * * 1"                 cron handler (callable keyed by a 5-token expression)
    migrate.2                   migration handler (callable keyed migrate.<N>)

Everything else is classified by :mod:`nouns.core.descriptor_parser`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .descriptor_parser import parse_field
from .errors import DefinitionError, VersionConflictError
from .ir import CascadeDescriptor, EnrichmentSource, EntityDefinition, FieldDescriptor, Handler

logger = logging.getLogger(__name__)

EVENT_PATTERN = re.compile(r"^on[A-Z]")
SCHEDULE_PATTERN = re.compile(r"^every[A-Z0-9]")
CRON_FIELD = r"(\*(?:/\d+)?|[\d,\-/]+)"
CRON_PATTERN = re.compile(r"^" + r"\s+".join([CRON_FIELD] * 5) + r"$")
MIGRATE_PATTERN = re.compile(r"^migrate\.(\d+)$")


def is_cron_expression(key: str) -> bool:
    return CRON_PATTERN.match(key.strip()) is not None


def parse_definition(raw: Mapping[str, Any]) -> EntityDefinition:
    """Parse a raw definition mapping into an EntityDefinition.

    Raises:
        DefinitionError: ``$type`` is missing or ``$version``/``$enrich`` is malformed
        VersionConflictError: two migrations target the same version
    """
    type_name = raw.get("$type")
    if not isinstance(type_name, str) or not type_name:
        raise DefinitionError("Definition is missing $type")

    version = _parse_version(raw.get("$version"), type_name)
    extends, inherited_context = _parse_extends(raw.get("$extends"))

    fields: dict[str, FieldDescriptor] = {}
    cascades: dict[str, CascadeDescriptor] = {}
    events: dict[str, Handler] = {}
    schedules: dict[str, Handler] = {}
    crons: dict[str, Handler] = {}
    migrations: dict[int, Handler] = {}

    for key, value in raw.items():
        if key.startswith("$"):
            continue

        if callable(value):
            migrate = MIGRATE_PATTERN.match(key)
            if migrate is not None:
                target = int(migrate.group(1))
                if target in migrations:
                    raise VersionConflictError(
                        f"Two migrations target version {target}",
                        current=version,
                        type_name=type_name,
                    )
                migrations[target] = value
                continue
            if EVENT_PATTERN.match(key):
                events[key] = value
                continue
            if SCHEDULE_PATTERN.match(key):
                schedules[key] = value
                continue
            if is_cron_expression(key):
                crons[key] = value
                continue

        field = parse_field(key, value)
        fields[key] = field
        if field.cascade is not None:
            cascades[key] = field.cascade

    for target in sorted(migrations):
        if target > version:
            logger.warning(
                "%s: migration to version %d is ahead of definition version %d and will not run",
                type_name,
                target,
                version,
            )

    logger.debug(
        "Parsed %s v%d: %d fields, %d cascades, %d events, %d migrations",
        type_name,
        version,
        len(fields),
        len(cascades),
        len(events),
        len(migrations),
    )
    return EntityDefinition(
        type=type_name,
        id=str(raw["$id"]) if raw.get("$id") is not None else None,
        version=version,
        context=raw.get("$context") or inherited_context,
        extends=extends,
        seed=raw.get("$seed"),
        enrich=_parse_enrich(raw.get("$enrich"), type_name),
        fields=fields,
        cascades=cascades,
        events=events,
        schedules=schedules,
        crons=crons,
        migrations=migrations,
    )


def _parse_version(value: Any, type_name: str) -> int:
    if value is None:
        return 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise DefinitionError(f"$version must be an integer, got {value!r}", type_name=type_name)
    if value < 1:
        raise DefinitionError(f"$version must be >= 1, got {value}", type_name=type_name)
    return value


def _parse_extends(value: Any) -> tuple[str | None, str | None]:
    """``$extends`` may name a parent type or be a parent definition object."""
    if value is None:
        return None, None
    if isinstance(value, str):
        return value, None
    parent_type = getattr(value, "type", None)
    if isinstance(parent_type, str):
        return parent_type, getattr(value, "context", None)
    return str(value), None


def _parse_enrich(value: Any, type_name: str) -> list[EnrichmentSource]:
    """Accepts ``'->Resource'``, a single mapping, or a list of either."""
    if value is None:
        return []
    entries = value if isinstance(value, (list, tuple)) else [value]
    sources: list[EnrichmentSource] = []
    for entry in entries:
        if isinstance(entry, str):
            if "://" in entry:
                sources.append(EnrichmentSource(source=entry))
            else:
                sources.append(EnrichmentSource(resource=entry))
        elif isinstance(entry, Mapping):
            try:
                sources.append(EnrichmentSource.model_validate(dict(entry)))
            except ValidationError as e:
                raise DefinitionError(f"Invalid $enrich entry: {e}", type_name=type_name) from e
        else:
            raise DefinitionError(f"Unsupported $enrich entry {entry!r}", type_name=type_name)
    return sources
