"""
Source capture for compute functions and link filters.

Captured text is what code generation embeds as literal code; nothing here is
ever evaluated. Lambdas are cut out of their surrounding line with ``ast`` so
that ``"arr": lambda r: r["mrr"] * 12,`` yields ``lambda r: r["mrr"] * 12``.
"""

from __future__ import annotations

import ast
import inspect
import logging
import textwrap
import tokenize
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

LAMBDA_NAME = "<lambda>"
MAX_LAMBDA_LINES = 40
_DELIMITERS = frozenset(",)]}\n#")


def capture_source(fn: Callable[..., Any]) -> str | None:
    """Return the source text of *fn*, or None when it cannot be recovered."""
    try:
        lines, _ = inspect.getsourcelines(fn)
    except (OSError, TypeError, SyntaxError, tokenize.TokenError):
        logger.debug("No source available for %r", fn)
        return None

    if getattr(fn, "__name__", "") != LAMBDA_NAME:
        text = textwrap.dedent("".join(lines))
        return _strip_decorators(text).rstrip() + "\n"
    return _extract_lambda(textwrap.dedent("".join(lines[:MAX_LAMBDA_LINES])), fn)


def _strip_decorators(text: str) -> str:
    lines = text.splitlines(keepends=True)
    while lines and lines[0].lstrip().startswith("@"):
        lines.pop(0)
    return "".join(lines)


def _extract_lambda(text: str, fn: Callable[..., Any]) -> str | None:
    """Find the lambda expression inside *text* whose parameters match *fn*."""
    code = getattr(fn, "__code__", None)
    expected = list(code.co_varnames[: code.co_argcount]) if code else None

    start = text.find("lambda")
    while start != -1:
        candidate = _longest_lambda_at(text, start)
        if candidate is not None:
            expr, node = candidate
            params = [a.arg for a in node.args.args]
            if expected is None or params == expected:
                return expr
        start = text.find("lambda", start + len("lambda"))

    logger.debug("Could not isolate lambda source for %r", fn)
    return None


def _longest_lambda_at(text: str, start: int) -> tuple[str, ast.Lambda] | None:
    # Shrink from the right until the slice parses as a single lambda; only
    # positions before a delimiter can end an expression inside a literal.
    ends = [len(text)] + [i for i in range(len(text) - 1, start, -1) if text[i] in _DELIMITERS]
    for end in ends:
        snippet = text[start:end].strip()
        if not snippet:
            continue
        try:
            tree = ast.parse(snippet, mode="eval")
        except SyntaxError:
            continue
        if isinstance(tree.body, ast.Lambda):
            return snippet, tree.body
    return None


def is_python_function_source(code: str) -> bool:
    """True when *code* is a lambda expression or ``def`` block rather than a formula."""
    stripped = code.lstrip()
    return stripped.startswith(("lambda", "def ", "async def "))


def function_name(code: str) -> str | None:
    """Name of the first ``def`` in *code*, if any."""
    try:
        tree = ast.parse(textwrap.dedent(code))
    except SyntaxError:
        return None
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return node.name
    return None
