"""
Context (vocabulary namespace) resolution.

First match wins:

    1. explicit override
    2. request host          -> https://<host>
    3. environment           NOUNS_CONTEXT, VERCEL_URL, CF_PAGES_URL, WORKER_HOST
    4. static config         [nouns] context in nouns.toml
    5. fallback              http://localhost:3000
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from ..config import NounsConfig

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "http://localhost:3000"

# (variable, value is a bare host that needs a scheme)
ENVIRONMENT_VARIABLES: list[tuple[str, bool]] = [
    ("NOUNS_CONTEXT", False),
    ("VERCEL_URL", True),
    ("CF_PAGES_URL", False),
    ("WORKER_HOST", True),
]


def _with_scheme(host: str) -> str:
    host = host.strip().rstrip("/")
    if host.startswith(("http://", "https://")):
        return host
    return f"https://{host}"


def resolve_context(
    override: str | None = None,
    *,
    host: str | None = None,
    environ: Mapping[str, str] | None = None,
    config: NounsConfig | None = None,
) -> str:
    """Resolve the context URL deterministically."""
    if override:
        return override.rstrip("/")
    if host:
        return _with_scheme(host)

    env = os.environ if environ is None else environ
    for variable, bare_host in ENVIRONMENT_VARIABLES:
        value = env.get(variable)
        if value:
            logger.debug("Context from %s", variable)
            return _with_scheme(value) if bare_host else value.rstrip("/")

    if config is not None and config.context:
        return config.context.rstrip("/")
    return DEFAULT_CONTEXT


def is_absolute(id: str) -> bool:
    return id.startswith("http")


def resolve_id(id: str, context: str) -> str:
    """Absolute ids pass through; others are made relative to *context*."""
    if is_absolute(id):
        return id
    return f"{context.rstrip('/')}/{id.lstrip('/')}"
