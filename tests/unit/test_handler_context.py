"""
Tests for HandlerContext: identity, function access and the async hooks.

The async hooks talk to recording collaborators defined in conftest.
"""

import logging
from typing import Any

import pytest

from nouns.core.errors import CascadeNotFoundError, InstanceNotFoundError, MissingCollaboratorError
from nouns.core.factory import Definition, define
from nouns.core.ir import DeferredGeneration, PrimitiveType
from nouns.core.runtime import MemoryStorage, Runtime
from nouns.core.runtime.context import coerce_value, render_template


class TestIdentityAndFunctions:
    """Tests for identity properties and function attributes."""

    def test_identity(self, bound_runtime: Runtime, storage: MemoryStorage) -> None:
        ctx = bound_runtime.context

        assert ctx.type == "Startup"
        assert ctx.version == 1
        assert ctx.context == "https://startups.do"
        assert ctx.extends is None
        assert ctx.id == ""
        assert ctx.storage is storage

    def test_functions_are_attributes(self, bound_runtime: Runtime) -> None:
        ctx = bound_runtime.context

        assert ctx.arr({"mrr": 1}) == 12
        assert isinstance(ctx.pitch(), DeferredGeneration)

    @pytest.mark.parametrize("name", ["name", "missing"])
    def test_non_functions_are_not_attributes(self, bound_runtime: Runtime, name: str) -> None:
        with pytest.raises(AttributeError):
            getattr(bound_runtime.context, name)

    def test_functions_take_precedence_over_members(self, storage: MemoryStorage) -> None:
        """A function field named like a context member replaces that member."""
        doc = define({"$type": "Doc", "search": lambda r: "ranked", "get": lambda r: r["q"]})
        ctx = Runtime(doc).bind(storage).context

        assert ctx.search({"q": 1}) == "ranked"
        assert ctx.get({"q": 7}) == 7
        assert ctx.call("search", {}) == "ranked"

    def test_identity_members_are_not_replaced(self, storage: MemoryStorage, caplog: pytest.LogCaptureFixture) -> None:
        doc = define({"$type": "Doc", "type": lambda r: "article"})

        with caplog.at_level(logging.WARNING, logger="nouns.core.runtime.context"):
            ctx = Runtime(doc).bind(storage).context

        assert ctx.type == "Doc"
        assert ctx.call("type", {}) == "article"
        assert "collide with context identity" in caplog.text

    def test_crud_mirrors(self, bound_runtime: Runtime) -> None:
        ctx = bound_runtime.context
        ctx.create("acme", {"name": "Acme"})
        ctx.put("acme", {"name": "Acme Inc"})

        assert ctx.get("acme").data == {"name": "Acme Inc"}
        assert [i.id for i in ctx.instances()] == ["acme"]
        assert ctx.delete("acme")

    def test_handler_receives_context(self, storage: MemoryStorage) -> None:
        """Event handlers can write back through the context."""

        def on_created(startup, ctx):
            if "status" not in startup.data:
                ctx.put(startup.id, {**startup.data, "status": "new"})

        runtime = Runtime(define({"$type": "Startup", "onStartupCreated": on_created})).bind(storage)
        runtime.create("acme", {"name": "Acme"})

        assert runtime.get("acme").data == {"name": "Acme", "status": "new"}


class TestCascade:
    """Tests for the cascade hook."""

    @pytest.fixture
    def acme(self, bound_runtime: Runtime):
        return bound_runtime.create("acme", {"name": "Acme", "problem": "slow payroll", "industry": "fintech"})

    @pytest.mark.asyncio
    async def test_generative_array_cascade(self, bound_runtime: Runtime, acme, generator) -> None:
        generator.result = ["Payroll managers", "Small business owners"]

        result = await bound_runtime.context.cascade("acme", "icps")

        assert result == ["Payroll managers", "Small business owners"]
        (request,) = generator.requests
        assert request.name == "icps"
        assert request.prompt == "Who specifically has slow payroll?"
        assert request.template == "Who specifically has {problem}?"
        assert request.target_type == "IdealCustomerProfile"
        assert request.is_array
        assert bound_runtime.get("acme").data["icps"] == result

    @pytest.mark.asyncio
    async def test_cascade_accepts_instance(self, bound_runtime: Runtime, acme, generator) -> None:
        await bound_runtime.context.cascade(acme, "icps")

        assert len(generator.requests) == 1

    @pytest.mark.asyncio
    async def test_fuzzy_field_is_grounded(self, bound_runtime: Runtime, acme, grounder) -> None:
        grounder.matches = {"fintech": "https://industries.do/financial-services"}

        result = await bound_runtime.context.cascade("acme", "industry")

        assert result == "https://industries.do/financial-services"
        assert grounder.calls == [("fintech", "Industry")]
        assert bound_runtime.get("acme").data["industry"] == result

    @pytest.mark.asyncio
    async def test_fuzzy_cascade_renders_prompt(self, storage: MemoryStorage, grounder) -> None:
        definition = define({"$type": "Startup", "market": "Best market for {name} ~>Market"})
        runtime = Runtime(definition, grounder=grounder).bind(storage)
        runtime.create("acme", {"name": "Acme"})

        await runtime.context.cascade("acme", "market")

        assert grounder.calls == [("Best market for Acme", "Market")]

    @pytest.mark.asyncio
    async def test_no_match_is_not_stored(self, bound_runtime: Runtime, acme, grounder) -> None:
        result = await bound_runtime.context.cascade("acme", "industry")

        assert result is None
        assert bound_runtime.get("acme").data["industry"] == "fintech"

    @pytest.mark.asyncio
    async def test_pure_link_returns_current_value(self, bound_runtime: Runtime, generator, grounder) -> None:
        bound_runtime.create("acme", {"name": "Acme", "founder": "https://founders.do/jane"})

        result = await bound_runtime.context.cascade("acme", "founder")

        assert result == "https://founders.do/jane"
        assert generator.requests == []
        assert grounder.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["name", "missing"])
    async def test_unknown_cascade(self, bound_runtime: Runtime, acme, field: str) -> None:
        with pytest.raises(CascadeNotFoundError):
            await bound_runtime.context.cascade("acme", field)

    @pytest.mark.asyncio
    async def test_missing_instance(self, bound_runtime: Runtime) -> None:
        with pytest.raises(InstanceNotFoundError):
            await bound_runtime.context.cascade("nobody", "icps")

    @pytest.mark.asyncio
    async def test_missing_generator(self, startup: Definition, storage: MemoryStorage) -> None:
        runtime = Runtime(startup).bind(storage)
        runtime.create("acme", {"name": "Acme"})

        with pytest.raises(MissingCollaboratorError) as exc_info:
            await runtime.context.cascade("acme", "icps")

        assert exc_info.value.role == "generator"


class TestSearch:
    """Tests for the search hook."""

    @pytest.mark.asyncio
    async def test_search_does_not_store(self, bound_runtime: Runtime, grounder) -> None:
        grounder.matches = {"fintech": "https://industries.do/financial-services"}
        bound_runtime.create("acme", {"name": "Acme", "industry": "fintech"})

        result = await bound_runtime.context.search("acme", "industry")

        assert result == "https://industries.do/financial-services"
        assert bound_runtime.get("acme").data["industry"] == "fintech"

    @pytest.mark.asyncio
    async def test_search_renders_prompt_when_empty(self, bound_runtime: Runtime, grounder) -> None:
        bound_runtime.create("acme", {"name": "Acme", "problem": "churn"})

        await bound_runtime.context.search("acme", "icps")

        assert grounder.calls == [("Who specifically has churn?", "IdealCustomerProfile")]

    @pytest.mark.asyncio
    async def test_search_falls_back_to_slug(self, bound_runtime: Runtime, grounder) -> None:
        bound_runtime.create("acme", {"name": "Acme"})

        await bound_runtime.context.search("acme", "founder")

        assert grounder.calls == [("acme", "Founder")]

    @pytest.mark.asyncio
    async def test_search_unknown_field(self, bound_runtime: Runtime) -> None:
        bound_runtime.create("acme", {"name": "Acme"})

        with pytest.raises(CascadeNotFoundError):
            await bound_runtime.context.search("acme", "name")


class TestEnrich:
    """Tests for the enrich hook."""

    @pytest.fixture
    def repo(self) -> Definition:
        return define(
            {
                "$type": "Repo",
                "$enrich": [
                    {"source": "github://repos/{owner}/{name}", "params": {"owner": "{owner}", "repo": "{name}"}},
                    {"resource": "->NpmPackage", "prefix": "npm", "params": {"name": "{package}"}},
                ],
                "owner": "Owner",
                "name": "Repository name",
                "stars": "$resource.stars (number)",
                "license": "$resource.license.key",
                "archived": "$resource.archived (boolean)",
                "downloads": "$npm.downloads (number)",
                "topics": "$resource.missing",
            }
        )

    @pytest.mark.asyncio
    async def test_enrich_maps_sync_fields(self, repo: Definition, storage: MemoryStorage, enricher) -> None:
        enricher.payload = {"stars": "42", "license": {"key": "mit"}, "archived": "false", "downloads": 1000}
        runtime = Runtime(repo, enricher=enricher).bind(storage)
        runtime.create("rocket", {"owner": "acme", "name": "rocket"})

        updates = await runtime.context.enrich("rocket")

        assert updates == {"stars": 42, "license": "mit", "archived": False, "downloads": 1000}
        assert runtime.get("rocket").data == {"owner": "acme", "name": "rocket", **updates}

    @pytest.mark.asyncio
    async def test_enrich_renders_params(self, repo: Definition, storage: MemoryStorage, enricher) -> None:
        runtime = Runtime(repo, enricher=enricher).bind(storage)
        runtime.create("rocket", {"owner": "acme", "name": "rocket"})

        await runtime.context.enrich("rocket")

        assert [params for _, params in enricher.calls] == [
            {"owner": "acme", "repo": "rocket"},
            {"name": "{package}"},
        ]

    @pytest.mark.asyncio
    async def test_enrich_single_source_number_field(self, storage: MemoryStorage, enricher) -> None:
        repo = define({"$type": "Repo", "$enrich": "github://repos/{name}", "stars": "$resource.stars (number)"})
        enricher.payload = {"stars": "7"}
        runtime = Runtime(repo, enricher=enricher).bind(storage)
        runtime.create("r1", {"name": "rocket"})

        assert await runtime.context.enrich("r1") == {"stars": 7}
        assert runtime.get("r1").data == {"name": "rocket", "stars": 7}

    @pytest.mark.asyncio
    async def test_no_sources(self, bound_runtime: Runtime, enricher) -> None:
        bound_runtime.create("acme", {"name": "Acme"})

        assert await bound_runtime.context.enrich("acme") == {}
        assert enricher.calls == []

    @pytest.mark.asyncio
    async def test_missing_enricher(self, repo: Definition, storage: MemoryStorage) -> None:
        runtime = Runtime(repo).bind(storage)
        runtime.create("rocket", {"owner": "acme", "name": "rocket"})

        with pytest.raises(MissingCollaboratorError):
            await runtime.context.enrich("rocket")


class TestTemplateHelpers:
    """Tests for template rendering and value coercion."""

    def test_render_template_keeps_unknown_placeholders(self) -> None:
        assert render_template("{name} in {city}", {"name": "Acme", "city": None}) == "Acme in {city}"

    @pytest.mark.parametrize(
        "value,primitive,expected",
        [
            ("42", PrimitiveType.NUMBER, 42),
            ("4.5", PrimitiveType.NUMBER, 4.5),
            ("n/a", PrimitiveType.NUMBER, "n/a"),
            ("yes", PrimitiveType.BOOLEAN, True),
            (0, PrimitiveType.BOOLEAN, False),
            (None, PrimitiveType.NUMBER, None),
            ("text", PrimitiveType.STRING, "text"),
        ],
    )
    def test_coerce_value(self, value: Any, primitive: PrimitiveType, expected: Any) -> None:
        assert coerce_value(value, primitive) == expected
