"""
Definition <-> JSON.

Serialized form:

    {
        "$type": "Startup",
        "$version": 2,
        "$context": "https://startups.do",
        "fields": {
            "name":  {"source": "input", "type": "string", "value": "Company name"},
            "pitch": {"source": "generate", "type": "string", "value": "Pitch for {name}",
                      "variables": ["name"]},
            "arr":   {"source": "compute", "type": "string", "value": "arr",
                      "code": "lambda r: r['mrr'] * 12"},
            "icps":  {"source": "link", "type": "array",
                      "value": "Who has this problem? ->IdealCustomerProfile", ...},
        },
        "handlers": {"events": [...], "schedules": [...], "crons": [...], "migrations": [...]},
    }

``parse`` is deliberately asymmetric: code text comes back as opaque
``CodeBlob`` values and handlers are not restored. Code only runs again
through :func:`nouns.core.codegen.generate_module`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .factory import Definition
from .ir import (
    CascadeDescriptor,
    FieldDescriptor,
    FunctionRef,
    Instance,
    PrimitiveType,
    SourceKind,
)

FIELDS_KEY = "fields"
HANDLERS_KEY = "handlers"


# =============================================================================
# Serialize
# =============================================================================


def serialize(definition: Definition) -> dict[str, Any]:
    """Serialize a definition to a JSON-compatible dict."""
    data: dict[str, Any] = {"$type": definition.type, "$version": definition.version}
    if definition.id:
        data["$id"] = definition.id
    if definition.context:
        data["$context"] = definition.context
    if definition.extends:
        data["$extends"] = definition.extends
    if definition.seed is not None:
        data["$seed"] = definition.seed
    if definition.enrich:
        data["$enrich"] = [s.model_dump(exclude_defaults=True) for s in definition.enrich]

    data[FIELDS_KEY] = {name: serialize_field(field) for name, field in definition.fields.items()}
    data[HANDLERS_KEY] = {
        "events": sorted(definition.events),
        "schedules": sorted(definition.schedules),
        "crons": sorted(definition.crons),
        "migrations": sorted(definition.migrations),
    }
    return data


def stringify(definition: Definition, indent: int = 2) -> str:
    """Serialize a definition to a JSON string; non-JSON option values are stringified."""
    return json.dumps(serialize(definition), indent=indent, default=str)


def serialize_field(field: FieldDescriptor) -> dict[str, Any]:
    """Serialize one field descriptor."""
    entry: dict[str, Any] = {
        "source": field.source.value,
        "type": field.type.value,
        "value": _literal_value(field),
    }

    if field.enum_values:
        entry["enum"] = list(field.enum_values)
    if field.generation is not None:
        entry["variables"] = list(field.generation.variables)
        if field.generation.output_schema is not None:
            entry["schema"] = field.generation.output_schema
        if field.generation.model:
            entry["model"] = field.generation.model
    if field.compute is not None:
        entry["code"] = _code_text(field.compute)
    if field.cascade is not None:
        entry.update(_cascade_entry(field.cascade))
    if field.nested is not None:
        entry[FIELDS_KEY] = {name: serialize_field(f) for name, f in field.nested.items()}
    if field.item is not None:
        entry["item"] = serialize_field(field.item)
    if field.options:
        entry["options"] = dict(field.options)
    if field.issues:
        entry["issues"] = list(field.issues)
    return entry


def _literal_value(field: FieldDescriptor) -> Any:
    if field.cascade is not None:
        return field.cascade.to_grammar()
    if field.source == SourceKind.GENERATE and field.generation is not None:
        return field.generation.prompt
    if field.source == SourceKind.SYNC and field.sync_path:
        return f"${field.sync_path}"
    if field.source == SourceKind.AGGREGATE and field.aggregate is not None:
        return str(field.aggregate)
    if field.source == SourceKind.FUZZY and field.fuzzy_target:
        return field.fuzzy_target
    return field.description


def _code_text(fn: Any) -> str | None:
    return fn.source if isinstance(fn, FunctionRef) else fn.code


def _cascade_entry(cascade: CascadeDescriptor) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "operator": cascade.operator.value,
        "target": cascade.target_type,
        "generative": cascade.is_generative,
        "array": cascade.is_array,
    }
    if cascade.predicate:
        entry["predicate"] = cascade.predicate
    if cascade.route_param:
        entry["route"] = cascade.route_param
    if cascade.filters:
        entry["filters"] = [
            {"field": f.field, "operator": f.operator.value, "value": f.value} for f in cascade.filters
        ]
    if cascade.rejected_filters:
        entry["rejected_filters"] = list(cascade.rejected_filters)
    if cascade.where is not None:
        entry["code"] = _code_text(cascade.where)
    return entry


def serialize_instance(instance: Instance) -> dict[str, Any]:
    """Serialize an instance with its identity and values."""
    data: dict[str, Any] = {
        "$id": instance.id,
        "$type": instance.type,
        "$version": instance.version,
    }
    if instance.context:
        data["$context"] = instance.context
    data["values"] = dict(instance.data)
    return data


# =============================================================================
# Parse
# =============================================================================


def parse(serialized: Mapping[str, Any] | str) -> Definition:
    """Rebuild a best-effort Definition from its serialized form.

    Every field is rebuilt through an explicit source marker, so classification
    does not depend on re-inference. Compute and link-filter code stays opaque.
    """
    data: Mapping[str, Any] = json.loads(serialized) if isinstance(serialized, str) else serialized

    raw: dict[str, Any] = {
        key: data[key]
        for key in ("$type", "$version", "$id", "$context", "$extends", "$seed", "$enrich")
        if key in data and data[key] is not None
    }
    for name, entry in (data.get(FIELDS_KEY) or {}).items():
        raw[name] = field_raw(entry)
    return Definition(raw)


def field_raw(entry: Mapping[str, Any]) -> Any:
    """Raw definition value that re-parses to the serialized field."""
    source = entry.get("source", SourceKind.INPUT.value)
    primitive = entry.get("type", PrimitiveType.STRING.value)
    value = entry.get("value")
    options = dict(entry.get("options") or {})

    if source == SourceKind.LINK.value:
        raw: dict[str, Any] = {"$link": [value] if entry.get("array") else value}
        if entry.get("code"):
            raw["where"] = entry["code"]
        return {**raw, **options}

    if primitive == PrimitiveType.ARRAY.value and "item" in entry:
        return [field_raw(entry["item"])]

    if source == SourceKind.INPUT.value and FIELDS_KEY in entry:
        return {name: field_raw(nested) for name, nested in entry[FIELDS_KEY].items()}

    if source == SourceKind.GENERATE.value:
        raw = {"$generate": value, "type": primitive}
        if entry.get("schema") is not None:
            raw["schema"] = entry["schema"]
        if entry.get("model"):
            raw["model"] = entry["model"]
    elif source == SourceKind.COMPUTE.value:
        raw = {"$compute": entry.get("code") or value, "type": primitive}
    elif source == SourceKind.INPUT.value and entry.get("enum"):
        raw = {"$input": " | ".join(entry["enum"]), "type": primitive}
    elif source in {kind.value for kind in SourceKind}:
        raw = {f"${source}": value, "type": primitive}
    else:
        raw = {"$input": value if isinstance(value, str) else str(value)}
    return {**raw, **options}
