"""
Python module generation.

Generates a self-contained module from a definition. Compute functions and
link filters are embedded as literal code; nothing is evaluated from a string
when the generated module loads.

Formula code (``"bankBalance / monthlyBurn"``) is compiled into a
record-reading lambda with :mod:`ast`:

    bankBalance / monthlyBurn
    -> lambda record: _path(record, 'bankBalance') / _path(record, 'monthlyBurn')
"""

from __future__ import annotations

import ast
import builtins
import json
import logging
import pprint
import re
from textwrap import dedent

from .factory import Definition
from .ir import CascadeDescriptor, CodeBlob, FunctionRef
from .serialize import stringify
from .source import function_name, is_python_function_source

logger = logging.getLogger(__name__)

RECORD_NAME = "record"
ITEM_NAME = "item"
BUILTIN_NAMES = frozenset(dir(builtins))


class _RecordNameTransformer(ast.NodeTransformer):
    """Rewrite free names and dotted paths into ``_path(<record>, "a.b")`` lookups."""

    def __init__(self, record: str, bound: frozenset[str] = frozenset()):
        self.record = record
        self.skip = BUILTIN_NAMES | bound

    def _lookup(self, path: str) -> ast.expr:
        return ast.Call(
            func=ast.Name(id="_path", ctx=ast.Load()),
            args=[ast.Name(id=self.record, ctx=ast.Load()), ast.Constant(value=path)],
            keywords=[],
        )

    def visit_Name(self, node: ast.Name) -> ast.expr:
        if isinstance(node.ctx, ast.Load) and node.id not in self.skip:
            return ast.copy_location(self._lookup(node.id), node)
        return node

    def visit_Attribute(self, node: ast.Attribute) -> ast.expr:
        path = _dotted_path(node)
        if path is not None and path.split(".", 1)[0] not in self.skip:
            return ast.copy_location(self._lookup(path), node)
        self.generic_visit(node)
        return node


def _dotted_path(node: ast.expr) -> str | None:
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def compile_formula(code: str, params: str = RECORD_NAME) -> str:
    """Compile formula text into lambda source reading from a record.

    Raises:
        SyntaxError: *code* is not a Python expression
    """
    record = params.split(",", 1)[0].strip()
    tree = ast.parse(code.strip(), mode="eval")
    bound = {n.id for n in ast.walk(tree) if isinstance(n, ast.Name) and isinstance(n.ctx, ast.Store)}
    bound |= {a.arg for n in ast.walk(tree) if isinstance(n, ast.Lambda) for a in n.args.args}
    body = _RecordNameTransformer(record, frozenset(bound)).visit(tree.body)
    ast.fix_missing_locations(body)
    return f"lambda {params}: {ast.unparse(body)}"


# =============================================================================
# Entry rendering
# =============================================================================


def _unavailable(field: str, code: str) -> str:
    return f"_unavailable({field!r}, {code!r})"


def _render_function(field: str, code: str | None, params: str, prelude: list[str], prefix: str) -> str:
    """Render one callable entry; ``def`` blocks are emitted into *prelude*."""
    if not code:
        logger.warning("%s: no source captured; generated entry raises when called", field)
        return _unavailable(field, "")

    text = dedent(code).strip()
    try:
        if is_python_function_source(text):
            ast.parse(text)
        else:
            text = compile_formula(text, params)
    except SyntaxError:
        logger.warning("%s: code is not valid Python; generated entry raises when called", field)
        return _unavailable(field, code)

    if text.startswith("lambda"):
        return f"({text})"

    name = function_name(text)
    if name is None:
        return _unavailable(field, code)
    renamed = prefix + "_" + re.sub(r"\W", "_", field)
    prelude.append(re.sub(rf"\bdef\s+{re.escape(name)}\s*\(", f"def {renamed}(", text, count=1))
    return renamed


def _render_link_filter(field: str, cascade: CascadeDescriptor, prelude: list[str]) -> str | None:
    if cascade.where is not None:
        code = cascade.where.source if isinstance(cascade.where, FunctionRef) else cascade.where.code
        return _render_function(field, code, f"{ITEM_NAME}, context=None", prelude, "_filter")

    clauses: list[str] = []
    if cascade.predicate and cascade.operator.is_incoming:
        clauses.append(f"_refers_to(_path({ITEM_NAME}, {cascade.predicate!r}), context)")
    for condition in cascade.filters:
        clauses.append(
            f"_match({ITEM_NAME}, {condition.field!r}, {condition.operator.value!r}, {condition.value!r})"
        )
    if not clauses:
        return None
    return f"(lambda {ITEM_NAME}, context=None: " + " and ".join(clauses) + ")"


# =============================================================================
# Module
# =============================================================================

RUNTIME_HELPERS = dedent('''
    def _path(record: Any, path: str) -> Any:
        """Follow a dotted path through mappings and attributes."""
        current = record
        for segment in path.split("."):
            if current is None:
                return None
            if isinstance(current, Mapping):
                current = current.get(segment)
            else:
                current = getattr(current, segment, None)
        return current


    def _ref_id(value: Any) -> Any:
        if isinstance(value, Mapping):
            return value.get("$id", value.get("id"))
        return getattr(value, "id", value)


    def _refers_to(value: Any, context: Any) -> bool:
        if context is None:
            return value is not None
        target = _ref_id(context)
        if isinstance(value, (list, tuple)):
            return any(_ref_id(v) == target for v in value)
        return _ref_id(value) == target


    def _match(item: Any, field: str, op: str, expected: Any) -> bool:
        actual = _path(item, field)
        if op in ("=", "!="):
            equal = actual == expected or _ref_id(actual) == expected
            return equal if op == "=" else not equal
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False
        if op == ">":
            return actual > expected
        if op == "<":
            return actual < expected
        if op == ">=":
            return actual >= expected
        return actual <= expected


    def _unavailable(field: str, code: str) -> Callable[..., Any]:
        def _raise(*args: Any, **kwargs: Any) -> Any:
            raise NotImplementedError(f"Code for {field!r} could not be compiled: {code}")

        return _raise


    def _accepts_context(fn: Callable[..., Any]) -> bool:
        try:
            params = list(inspect.signature(fn).parameters.values())
        except (TypeError, ValueError):
            return False
        if any(p.kind == p.VAR_POSITIONAL for p in params):
            return True
        positional = [p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
        return len(positional) >= 2
''').strip()

ENTRY_POINTS = dedent('''
    def compute(field: str, record: Any) -> Any:
        """Execute a compute function; None when *field* has none."""
        fn = COMPUTE_FUNCTIONS.get(field)
        if fn is None:
            return None
        return fn(record)


    def filter_link(field: str, items: Iterable[Any], context: Any = None) -> list[Any]:
        """Filter *items* by a link's filter; unfiltered links keep every item."""
        fn = LINK_FILTERS.get(field)
        if fn is None:
            return list(items)
        if _accepts_context(fn):
            return [item for item in items if fn(item, context)]
        return [item for item in items if fn(item)]
''').strip()


def _export_identifier(name: str) -> str:
    identifier = re.sub(r"\W", "_", name)
    if not identifier or identifier[0].isdigit():
        identifier = f"_{identifier}"
    return identifier


def generate_module(definition: Definition, *, export_name: str | None = None) -> str:
    """Generate a self-contained Python module for *definition*."""
    prelude: list[str] = []

    compute_entries: list[str] = []
    for name, fn in definition.functions.items():
        if isinstance(fn, FunctionRef):
            code: str | None = fn.source
        elif isinstance(fn, CodeBlob):
            code = fn.code
        else:
            continue
        compute_entries.append(f"    {name!r}: {_render_function(name, code, RECORD_NAME, prelude, '_compute')},")

    filter_entries: list[str] = []
    for name, cascade in definition.cascades.items():
        rendered = _render_link_filter(name, cascade, prelude)
        if rendered is not None:
            filter_entries.append(f"    {name!r}: {rendered},")

    meta = json.loads(stringify(definition))
    export = _export_identifier(export_name or definition.type)

    lines = [
        '"""',
        f"{definition.type} definition module.",
        "Generated by nouns - DO NOT EDIT.",
        '"""',
        "",
        "from __future__ import annotations",
        "",
        "import inspect",
        "from collections.abc import Callable, Iterable, Mapping",
        "from types import SimpleNamespace",
        "from typing import Any",
        "",
        f"TYPE = {definition.type!r}",
        f"VERSION = {definition.version!r}",
        f"CONTEXT = {definition.context!r}",
        "",
        "META: dict[str, Any] = " + pprint.pformat(meta, indent=4, sort_dicts=False),
        "",
        "",
        RUNTIME_HELPERS,
        "",
        "",
    ]
    for block in prelude:
        lines.append(block)
        lines.append("")
        lines.append("")

    lines.append("COMPUTE_FUNCTIONS: dict[str, Callable[..., Any]] = {")
    lines.extend(compute_entries)
    lines.append("}")
    lines.append("")
    lines.append("LINK_FILTERS: dict[str, Callable[..., Any]] = {")
    lines.extend(filter_entries)
    lines.append("}")
    lines.append("")
    lines.append("")
    lines.append(ENTRY_POINTS)
    lines.append("")
    lines.append("")
    lines.append(
        f"{export} = SimpleNamespace(type=TYPE, version=VERSION, context=CONTEXT, meta=META, "
        "compute=compute, filter_link=filter_link)"
    )
    lines.append("")

    logger.debug(
        "Generated module for %s: %d compute functions, %d link filters",
        definition.type,
        len(compute_entries),
        len(filter_entries),
    )
    return "\n".join(lines)
