"""
Descriptor parser: classifies one raw field value into a FieldDescriptor.

Classification precedence (first match wins):

    1. Explicit marker      {"$input": ...}, {"$generate": ...}, {"$compute": ...},
                            {"$sync": ...}, {"$aggregate": ...}, {"$fuzzy": ...},
                            {"$link": ...}
    2. Builder value        ref(...), ref(...).where(fn), sum(ref(...)), fuzzy(ref(...))
    3. Callable             lambda r: r["mrr"] * 12
    4. Legacy prompt form   {"mdx": "...", "schema": {...}, "model": "fast"}
    5. String               "Who has {problem}? ->ICP"   (cascade)
                            "$resource.stars (number)"  (sync)
                            "Pitch for {name}"          (generate)
                            "Founded (date)"            (typed input)
                            "Seed | SeriesA | Growth"   (enum)
                            "Company name"              (input)
    6. Single-element list  ["Key risks"], ["->Founder"], [{"name": "..."}]
    7. Unmarked mapping     structured generate when any nested placeholder,
                            otherwise a nested input object
    8. Anything else        input, value kept verbatim as description

Malformed values never raise: they degrade to a best-effort descriptor with
``issues`` populated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from typing import Any

from . import builder
from .ir import (
    AggregateFunction,
    AggregateSpec,
    CascadeDescriptor,
    CascadeOperator,
    CodeBlob,
    FieldDescriptor,
    FilterCondition,
    FilterOperator,
    FunctionRef,
    GenerativeFunctionDescriptor,
    PrimitiveType,
    SourceKind,
)
from .source import capture_source

logger = logging.getLogger(__name__)

# Operators are alternated longest first so "<~>" never reads as "<~".
CASCADE_PATTERN = re.compile(
    r"^(.*?)\s*(" + "|".join(re.escape(op.value) for op in CascadeOperator) + r")\s*(.+)$",
    re.DOTALL,
)
ROUTE_PARAM_PATTERN = re.compile(r"^:(\w+)\s+(.+)$", re.DOTALL)
FILTER_PATTERN = re.compile(r"\[([^\]]+)\]")
FILTER_CLAUSE_PATTERN = re.compile(r"(\w+)\s*(=|!=|>=|<=|>|<)\s*(.+)")
PREDICATE_PATTERN = re.compile(r"^(\w+)\.(\w+)$")
TYPE_SUFFIX_PATTERN = re.compile(r"\s*\((number|date|boolean)\)\s*$", re.IGNORECASE)
VARIABLE_PATTERN = re.compile(r"\{(\w+)\}")
SYNC_PATTERN = re.compile(r"^\$(\w+(?:\.\w+)*)$")
AGGREGATE_PATTERN = re.compile(r"^\s*(sum|count|avg|min|max)\s*\(\s*([\w.]+)\s*\)\s*$", re.IGNORECASE)
NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")

EXPLICIT_MARKERS: dict[str, SourceKind] = {
    "$input": SourceKind.INPUT,
    "$generate": SourceKind.GENERATE,
    "$compute": SourceKind.COMPUTE,
    "$sync": SourceKind.SYNC,
    "$aggregate": SourceKind.AGGREGATE,
    "$fuzzy": SourceKind.FUZZY,
    "$link": SourceKind.LINK,
}
LEGACY_PROMPT_KEYS = frozenset({"mdx", "prompt"})
LEGACY_EXTRA_KEYS = frozenset({"schema", "model"})
INTERPRETED_OPTIONS = frozenset({"type", "schema", "model", "description", "where"})


# =============================================================================
# Small helpers
# =============================================================================


def extract_variables(text: str) -> list[str]:
    """``{identifier}`` placeholder names in order of first appearance."""
    return list(dict.fromkeys(VARIABLE_PATTERN.findall(text)))


def has_placeholders(value: Any) -> bool:
    """True when *value* or any nested string contains a ``{placeholder}``."""
    return any(VARIABLE_PATTERN.search(text) for text in _walk_strings(value))


def _walk_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for key, nested in value.items():
            if not str(key).startswith("$"):
                yield from _walk_strings(nested)
    elif isinstance(value, (list, tuple)):
        for nested in value:
            yield from _walk_strings(nested)


def split_type_suffix(text: str) -> tuple[str, PrimitiveType | None]:
    """Strip a trailing ``(number|date|boolean)`` suffix.

    Returns:
        (text without suffix, declared type or None)
    """
    match = TYPE_SUFFIX_PATTERN.search(text)
    if match is None:
        return text, None
    return text[: match.start()].strip(), PrimitiveType(match.group(1).lower())


def parse_enum_values(text: str) -> list[str] | None:
    """``"A | B | C"`` -> ``["A", "B", "C"]``; None unless every alternative is non-empty."""
    if "|" not in text:
        return None
    values = [part.strip() for part in text.split("|")]
    if len(values) < 2 or not all(values):
        return None
    return values


def coerce_filter_value(raw: str) -> str | int | float | bool:
    value = raw.strip()
    if value == "true":
        return True
    if value == "false":
        return False
    if NUMBER_PATTERN.match(value):
        return float(value) if "." in value else int(value)
    return value


def parse_filters(text: str) -> tuple[list[FilterCondition], list[str]]:
    """Parse ``status=active, mrr>1000`` into conditions.

    Returns:
        (parsed conditions, clauses that did not match ``field<op>value``)
    """
    conditions: list[FilterCondition] = []
    rejected: list[str] = []
    for clause in (part.strip() for part in text.split(",")):
        if not clause:
            continue
        match = FILTER_CLAUSE_PATTERN.fullmatch(clause)
        if match is None:
            rejected.append(clause)
            continue
        field, operator, raw_value = match.groups()
        conditions.append(
            FilterCondition(
                field=field,
                operator=FilterOperator(operator),
                value=coerce_filter_value(raw_value),
            )
        )
    return conditions, rejected


# =============================================================================
# Cascade grammar
# =============================================================================


def parse_cascade(text: str) -> tuple[str, CascadeDescriptor | None]:
    """Parse the relationship mini-grammar.

    Formats:
        'Description ->Type'        outgoing, generative
        '->Type'                    outgoing, pure link
        '<- Type.predicate'         incoming via predicate
        ':param ->Type'             outgoing, instances independently addressable
        '->Type[status=active]'     with filter
        '<~> Type.predicate'        fuzzy bidirectional

    Returns:
        (description, cascade); cascade is None when *text* has no operator,
        in which case description is *text* unchanged.
    """
    route_param: str | None = None
    body = text
    route = ROUTE_PARAM_PATTERN.match(text.strip())
    if route is not None:
        route_param, body = route.group(1), route.group(2)

    match = CASCADE_PATTERN.match(body)
    if match is None:
        return text, None

    raw_prompt, operator, target_part = match.groups()
    prompt = raw_prompt.strip()
    target = target_part.strip()

    filters: list[FilterCondition] = []
    rejected: list[str] = []
    filter_match = FILTER_PATTERN.search(target)
    if filter_match is not None:
        filters, rejected = parse_filters(filter_match.group(1))
        target = FILTER_PATTERN.sub("", target, count=1).strip()
        for clause in rejected:
            logger.warning("Dropped unparseable filter clause %r in %r", clause, text)

    predicate: str | None = None
    predicate_match = PREDICATE_PATTERN.match(target)
    if predicate_match is not None:
        target, predicate = predicate_match.group(1), predicate_match.group(2)

    cascade = CascadeDescriptor(
        operator=CascadeOperator(operator),
        target_type=target,
        predicate=predicate,
        route_param=route_param,
        filters=filters,
        rejected_filters=rejected,
        generation_prompt=prompt or None,
    )
    return cascade.description, cascade


def is_cascade(text: str) -> bool:
    return parse_cascade(text)[1] is not None


# =============================================================================
# Field classification
# =============================================================================


def parse_field(name: str, value: Any) -> FieldDescriptor:
    """Classify one raw field value. Never raises for malformed input."""
    if isinstance(value, Mapping):
        marker = _find_marker(value)
        if marker is not None:
            return _parse_explicit(name, value, marker)

    if isinstance(value, (builder.Ref, builder.Query, builder.Aggregate, builder.FuzzyRef)):
        return _parse_builder(name, value)

    if callable(value):
        return FieldDescriptor(
            name=name,
            description=name,
            source=SourceKind.COMPUTE,
            compute=FunctionRef(fn=value, source=capture_source(value)),
        )

    if isinstance(value, Mapping) and _is_legacy_prompt(value):
        return _parse_legacy_prompt(name, value)

    if isinstance(value, str):
        return parse_string(name, value)

    if isinstance(value, (list, tuple)):
        if len(value) == 1:
            return _parse_repeated(name, value[0])
        return _degraded(
            FieldDescriptor(name=name, description=name, source=SourceKind.INPUT, type=PrimitiveType.ARRAY),
            f"expected a single-element list, got {len(value)} elements",
        )

    if isinstance(value, Mapping):
        return _parse_mapping(name, value)

    if isinstance(value, (bool, int, float)):
        return FieldDescriptor(name=name, description=str(value), source=SourceKind.INPUT)

    return _degraded(
        FieldDescriptor(name=name, description=str(value), source=SourceKind.INPUT),
        f"unsupported value of type {type(value).__name__}",
    )


def parse_fields(raw: Mapping[str, Any]) -> dict[str, FieldDescriptor]:
    """Parse every non-reserved key of a nested mapping."""
    return {key: parse_field(key, value) for key, value in raw.items() if not str(key).startswith("$")}


def parse_string(name: str, text: str) -> FieldDescriptor:
    """Classify a string: cascade, sync reference, generate, typed/enum input."""
    description, cascade = parse_cascade(text)
    if cascade is not None:
        return FieldDescriptor(
            name=name,
            description=description,
            source=SourceKind.LINK,
            cascade=cascade,
        )

    stripped, suffix_type = split_type_suffix(text)

    sync = SYNC_PATTERN.match(stripped)
    if sync is not None:
        return FieldDescriptor(
            name=name,
            description=stripped,
            source=SourceKind.SYNC,
            type=suffix_type or PrimitiveType.STRING,
            sync_path=sync.group(1),
        )

    if VARIABLE_PATTERN.search(stripped):
        return FieldDescriptor(
            name=name,
            description=stripped,
            source=SourceKind.GENERATE,
            type=suffix_type or PrimitiveType.STRING,
            generation=GenerativeFunctionDescriptor(prompt=stripped, variables=extract_variables(stripped)),
        )

    return _input_from_text(name, text)


def _input_from_text(name: str, text: str) -> FieldDescriptor:
    description, suffix_type = split_type_suffix(text)
    if suffix_type is not None:
        return FieldDescriptor(name=name, description=description, source=SourceKind.INPUT, type=suffix_type)

    enum_values = parse_enum_values(text)
    if enum_values is not None:
        return FieldDescriptor(
            name=name,
            description=text.strip(),
            source=SourceKind.INPUT,
            type=PrimitiveType.ENUM,
            enum_values=enum_values,
        )
    return FieldDescriptor(name=name, description=text, source=SourceKind.INPUT)


def _parse_repeated(name: str, element: Any) -> FieldDescriptor:
    item = parse_field("item", element)
    if isinstance(element, str) or (isinstance(element, Mapping) and _find_marker(element) is not None):
        description = item.description
    else:
        description = f"Array of {name}"

    cascade = item.cascade.model_copy(update={"is_array": True}) if item.cascade else None
    return FieldDescriptor(
        name=name,
        description=description,
        source=item.source,
        type=PrimitiveType.ARRAY,
        item=item,
        generation=item.generation,
        cascade=cascade,
        sync_path=item.sync_path,
        aggregate=item.aggregate,
        fuzzy_target=item.fuzzy_target,
        compute=item.compute,
        issues=list(item.issues),
    )


def _parse_mapping(name: str, value: Mapping[str, Any]) -> FieldDescriptor:
    if has_placeholders(value):
        return FieldDescriptor(
            name=name,
            description=name,
            source=SourceKind.GENERATE,
            type=PrimitiveType.OBJECT,
            generation=_structured_generation(name, value),
        )
    return FieldDescriptor(
        name=name,
        description=name,
        source=SourceKind.INPUT,
        type=PrimitiveType.OBJECT,
        nested=parse_fields(value),
    )


def _structured_generation(name: str, schema: Mapping[str, Any], model: str | None = None) -> GenerativeFunctionDescriptor:
    variables: list[str] = []
    for text in _walk_strings(schema):
        variables.extend(extract_variables(text))
    variables = list(dict.fromkeys(variables))
    placeholders = ", ".join("{" + v + "}" for v in variables)
    return GenerativeFunctionDescriptor(
        prompt=f"Generate {name} for context with: {placeholders}",
        output_schema=dict(schema),
        model=model,
        variables=variables,
    )


# -----------------------------------------------------------------------------
# Legacy prompt form
# -----------------------------------------------------------------------------


def _is_legacy_prompt(value: Mapping[str, Any]) -> bool:
    keys = set(value)
    prompt_keys = keys & LEGACY_PROMPT_KEYS
    if len(prompt_keys) != 1 or not isinstance(value[next(iter(prompt_keys))], str):
        return False
    return keys <= LEGACY_PROMPT_KEYS | LEGACY_EXTRA_KEYS


def _parse_legacy_prompt(name: str, value: Mapping[str, Any]) -> FieldDescriptor:
    prompt = value.get("mdx") or value.get("prompt") or ""
    schema = value.get("schema")
    return FieldDescriptor(
        name=name,
        description=prompt,
        source=SourceKind.GENERATE,
        type=PrimitiveType.OBJECT if isinstance(schema, Mapping) else PrimitiveType.STRING,
        generation=GenerativeFunctionDescriptor(
            prompt=prompt,
            output_schema=dict(schema) if isinstance(schema, Mapping) else None,
            model=value.get("model"),
            variables=extract_variables(prompt),
        ),
    )


# -----------------------------------------------------------------------------
# Builder values
# -----------------------------------------------------------------------------


def _parse_builder(name: str, value: Any) -> FieldDescriptor:
    if isinstance(value, builder.Query):
        return FieldDescriptor(
            name=name,
            description=value.target,
            source=SourceKind.LINK,
            type=PrimitiveType.ARRAY,
            cascade=CascadeDescriptor(
                operator=CascadeOperator.INCOMING,
                target_type=value.target,
                is_array=True,
                where=FunctionRef(fn=value.predicate, source=capture_source(value.predicate)),
            ),
        )

    if isinstance(value, builder.Aggregate):
        spec = AggregateSpec(function=value.function, path=value.path)
        return FieldDescriptor(
            name=name,
            description=str(spec),
            source=SourceKind.AGGREGATE,
            type=PrimitiveType.NUMBER,
            aggregate=spec,
        )

    if isinstance(value, builder.FuzzyRef):
        return FieldDescriptor(
            name=name,
            description=value.target,
            source=SourceKind.FUZZY,
            fuzzy_target=value.target,
        )

    ref: builder.Ref = value
    if not ref.path:
        return _degraded(
            FieldDescriptor(name=name, description=name, source=SourceKind.INPUT),
            "empty reference",
        )
    if ref.is_type_reference:
        return FieldDescriptor(
            name=name,
            description=ref.root,
            source=SourceKind.LINK,
            cascade=CascadeDescriptor(operator=CascadeOperator.OUTGOING, target_type=ref.root),
        )
    return FieldDescriptor(
        name=name,
        description=str(ref),
        source=SourceKind.SYNC,
        sync_path=str(ref),
    )


# -----------------------------------------------------------------------------
# Explicit markers
# -----------------------------------------------------------------------------


def _find_marker(value: Mapping[str, Any]) -> str | None:
    for key in value:
        if key in EXPLICIT_MARKERS:
            return key
    return None


def _parse_explicit(name: str, value: Mapping[str, Any], marker: str) -> FieldDescriptor:
    body = value[marker]
    source = EXPLICIT_MARKERS[marker]
    options = {k: v for k, v in value.items() if k not in EXPLICIT_MARKERS and k not in INTERPRETED_OPTIONS}
    issues: list[str] = []

    extra_markers = [k for k in value if k in EXPLICIT_MARKERS and k != marker]
    if extra_markers:
        issues.append(f"conflicting markers {extra_markers}; using {marker}")

    if source == SourceKind.INPUT:
        descriptor = _explicit_input(name, body)
    elif source == SourceKind.GENERATE:
        descriptor = _explicit_generate(name, body, value.get("schema"), value.get("model"))
    elif source == SourceKind.COMPUTE:
        descriptor = _explicit_compute(name, body)
    elif source == SourceKind.SYNC:
        descriptor = _explicit_sync(name, body)
    elif source == SourceKind.AGGREGATE:
        descriptor = _explicit_aggregate(name, body)
    elif source == SourceKind.FUZZY:
        descriptor = _explicit_fuzzy(name, body)
    else:
        descriptor = _explicit_link(name, body, value.get("where"))

    update: dict[str, Any] = {"options": options}
    if "description" in value and isinstance(value["description"], str):
        update["description"] = value["description"]
    if "type" in value:
        try:
            update["type"] = PrimitiveType(str(value["type"]).lower())
        except ValueError:
            issues.append(f"unknown type {value['type']!r}")
    descriptor = descriptor.model_copy(update=update)

    for issue in issues:
        descriptor = _degraded(descriptor, issue)
    return descriptor


def _explicit_input(name: str, body: Any) -> FieldDescriptor:
    if not isinstance(body, str):
        return FieldDescriptor(name=name, description=name, source=SourceKind.INPUT)
    # A cascade declared as input is a user-maintained link.
    description, cascade = parse_cascade(body)
    if cascade is not None:
        return FieldDescriptor(name=name, description=description, source=SourceKind.INPUT, cascade=cascade)
    return _input_from_text(name, body)


def _explicit_generate(name: str, body: Any, schema: Any, model: Any) -> FieldDescriptor:
    if isinstance(body, Mapping):
        return FieldDescriptor(
            name=name,
            description=name,
            source=SourceKind.GENERATE,
            type=PrimitiveType.OBJECT,
            generation=_structured_generation(name, body, model),
        )
    if isinstance(body, (list, tuple)) and len(body) == 1:
        item = _explicit_generate("item", body[0], schema, model)
        return item.model_copy(
            update={"name": name, "type": PrimitiveType.ARRAY, "item": item},
        )

    prompt, suffix_type = split_type_suffix(str(body))
    output_schema = dict(schema) if isinstance(schema, Mapping) else None
    if output_schema is not None:
        primitive = PrimitiveType.OBJECT
    else:
        primitive = suffix_type or PrimitiveType.STRING
    return FieldDescriptor(
        name=name,
        description=prompt,
        source=SourceKind.GENERATE,
        type=primitive,
        generation=GenerativeFunctionDescriptor(
            prompt=prompt,
            output_schema=output_schema,
            model=model if isinstance(model, str) else None,
            variables=extract_variables(prompt),
        ),
    )


def _explicit_compute(name: str, body: Any) -> FieldDescriptor:
    if callable(body):
        compute: FunctionRef | CodeBlob = FunctionRef(fn=body, source=capture_source(body))
        description = name
    elif isinstance(body, str):
        compute = CodeBlob(code=body)
        description = body
    else:
        return _degraded(
            FieldDescriptor(name=name, description=str(body), source=SourceKind.COMPUTE),
            "compute body must be a callable or code text",
        )
    return FieldDescriptor(name=name, description=description, source=SourceKind.COMPUTE, compute=compute)


def _explicit_sync(name: str, body: Any) -> FieldDescriptor:
    text, suffix_type = split_type_suffix(str(body))
    return FieldDescriptor(
        name=name,
        description=text,
        source=SourceKind.SYNC,
        type=suffix_type or PrimitiveType.STRING,
        sync_path=text[1:] if text.startswith("$") else text,
    )


def _explicit_aggregate(name: str, body: Any) -> FieldDescriptor:
    text = str(body)
    match = AGGREGATE_PATTERN.match(text)
    if match is None:
        return _degraded(
            FieldDescriptor(
                name=name,
                description=text,
                source=SourceKind.AGGREGATE,
                type=PrimitiveType.NUMBER,
                aggregate=AggregateSpec(path=text),
            ),
            f"unreadable aggregate expression {text!r}",
        )
    spec = AggregateSpec(function=AggregateFunction(match.group(1).lower()), path=match.group(2))
    return FieldDescriptor(
        name=name,
        description=str(spec),
        source=SourceKind.AGGREGATE,
        type=PrimitiveType.NUMBER,
        aggregate=spec,
    )


def _explicit_fuzzy(name: str, body: Any) -> FieldDescriptor:
    target = str(body).strip()
    return FieldDescriptor(name=name, description=target, source=SourceKind.FUZZY, fuzzy_target=target)


def _explicit_link(name: str, body: Any, where: Any) -> FieldDescriptor:
    repeated = isinstance(body, (list, tuple))
    text = _link_text(body[0] if repeated and body else body)
    descriptor = _parse_repeated(name, text) if repeated else parse_string(name, text)
    if descriptor.cascade is None:
        return _degraded(
            FieldDescriptor(name=name, description=text, source=SourceKind.LINK),
            f"unreadable link {text!r}",
        )

    if callable(where):
        filter_fn: FunctionRef | CodeBlob | None = FunctionRef(fn=where, source=capture_source(where))
    elif isinstance(where, str):
        filter_fn = CodeBlob(code=where)
    else:
        filter_fn = None
    if filter_fn is not None:
        descriptor = descriptor.model_copy(
            update={"cascade": descriptor.cascade.model_copy(update={"where": filter_fn})},
        )
    return descriptor


def _link_text(body: Any) -> str:
    """Bare type names in ``$link`` mean an outgoing link."""
    text = str(body).strip()
    if not is_cascade(text):
        text = f"{CascadeOperator.OUTGOING.value}{text}"
    return text


def _degraded(descriptor: FieldDescriptor, issue: str) -> FieldDescriptor:
    logger.warning("Field %r: %s", descriptor.name, issue)
    return descriptor.model_copy(update={"issues": [*descriptor.issues, issue]})
