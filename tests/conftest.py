"""Shared pytest fixtures for nouns tests."""

from __future__ import annotations

from typing import Any

import pytest

from nouns.core import builder as b
from nouns.core.factory import Definition, define
from nouns.core.ir import EnrichmentSource
from nouns.core.runtime import GenerationRequest, MemoryStorage, Runtime


class RecordingGenerator:
    """Generation collaborator returning a canned result."""

    def __init__(self, result: Any = "generated"):
        self.result = result
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> Any:
        self.requests.append(request)
        return self.result


class RecordingGrounder:
    """Grounding collaborator backed by a lookup table."""

    def __init__(self, matches: dict[str, Any] | None = None):
        self.matches = matches or {}
        self.calls: list[tuple[Any, str]] = []

    async def ground(self, value: Any, target_type: str) -> Any | None:
        self.calls.append((value, target_type))
        return self.matches.get(str(value))


class RecordingEnricher:
    """Enrichment collaborator returning a fixed payload per call."""

    def __init__(self, payload: dict[str, Any] | None = None):
        self.payload = payload or {}
        self.calls: list[tuple[EnrichmentSource, dict[str, str]]] = []

    async def fetch(self, source: EnrichmentSource, params: dict[str, str]) -> dict[str, Any]:
        self.calls.append((source, params))
        return self.payload


@pytest.fixture
def startup_raw() -> dict[str, Any]:
    """Return a raw Startup definition covering every source kind."""
    return {
        "$type": "Startup",
        "$context": "https://startups.do",
        "name": "Company name",
        "stage": "Seed | SeriesA | Growth",
        "founded": "Founded (date)",
        "problem": "What problem does it solve?",
        "pitch": "Elevator pitch for {name} solving {problem}",
        "icps": ["Who specifically has {problem}? ->IdealCustomerProfile"],
        "founder": "->Founder",
        "customers": "<- Customer.startup",
        "industry": b.fuzzy(b.ref("Industry")),
        "stars": "$resource.stars (number)",
        "mrr": "Monthly recurring revenue (number)",
        "arr": lambda r: r["mrr"] * 12,
        "revenue": b.sum(b.ref("customers", "mrr")),
    }


@pytest.fixture
def startup(startup_raw: dict[str, Any]) -> Definition:
    """Return the parsed Startup definition."""
    return define(startup_raw)


@pytest.fixture
def storage() -> MemoryStorage:
    """Return empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def generator() -> RecordingGenerator:
    return RecordingGenerator()


@pytest.fixture
def grounder() -> RecordingGrounder:
    return RecordingGrounder()


@pytest.fixture
def enricher() -> RecordingEnricher:
    return RecordingEnricher()


@pytest.fixture
def bound_runtime(
    startup: Definition,
    storage: MemoryStorage,
    generator: RecordingGenerator,
    grounder: RecordingGrounder,
    enricher: RecordingEnricher,
) -> Runtime:
    """Return a Startup runtime bound to empty storage with recording collaborators."""
    runtime = Runtime(startup, generator=generator, grounder=grounder, enricher=enricher)
    return runtime.bind(storage)
