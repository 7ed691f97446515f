"""
Tests for Python module generation.

Generated modules are compiled and executed into a fresh namespace so the
entry points can be exercised directly.
"""

import json
from typing import Any

import pytest

from nouns.core import builder as b
from nouns.core.codegen import compile_formula, generate_module
from nouns.core.factory import Definition, define
from nouns.core.serialize import parse, stringify


def runway_months(record):
    return record["bankBalance"] // record["monthlyBurn"]


def _load(source: str) -> dict[str, Any]:
    namespace: dict[str, Any] = {}
    exec(compile(source, "<generated>", "exec"), namespace)  # noqa: S102
    return namespace


class TestCompileFormula:
    """Tests for formula-to-lambda compilation."""

    def test_names_become_record_lookups(self) -> None:
        assert (
            compile_formula("bankBalance / monthlyBurn")
            == "lambda record: _path(record, 'bankBalance') / _path(record, 'monthlyBurn')"
        )

    def test_dotted_paths_and_builtins(self) -> None:
        assert (
            compile_formula("round(repo.stars + forks * 2)")
            == "lambda record: round(_path(record, 'repo.stars') + _path(record, 'forks') * 2)"
        )

    def test_comprehension_variables_are_bound(self) -> None:
        compiled = compile_formula("sum(d for d in deals)")

        assert "_path(record, 'deals')" in compiled
        assert "_path(record, 'd')" not in compiled

    def test_custom_params(self) -> None:
        assert compile_formula("status == 'active'", "item, context=None") == (
            "lambda item, context=None: _path(item, 'status') == 'active'"
        )

    def test_invalid_formula(self) -> None:
        with pytest.raises(SyntaxError):
            compile_formula("stars +")


class TestGeneratedModule:
    """Tests for generate_module output."""

    @pytest.fixture
    def module(self, startup: Definition) -> dict[str, Any]:
        return _load(generate_module(startup))

    def test_header_and_metadata(self, startup: Definition) -> None:
        source = generate_module(startup)

        assert "Generated by nouns - DO NOT EDIT." in source
        namespace = _load(source)
        assert namespace["TYPE"] == "Startup"
        assert namespace["VERSION"] == 1
        assert namespace["CONTEXT"] == "https://startups.do"
        assert namespace["META"] == json.loads(stringify(startup))

    def test_compute_lambda(self, module: dict[str, Any]) -> None:
        assert module["compute"]("arr", {"mrr": 100}) == 1200

    def test_compute_without_function(self, module: dict[str, Any]) -> None:
        assert module["compute"]("name", {"name": "Acme"}) is None

    def test_export_namespace(self, module: dict[str, Any]) -> None:
        startup = module["Startup"]

        assert startup.type == "Startup"
        assert startup.compute("arr", {"mrr": 1}) == 12

    def test_custom_export_name(self, startup: Definition) -> None:
        namespace = _load(generate_module(startup, export_name="startup-v1"))

        assert namespace["startup_v1"].version == 1

    def test_incoming_predicate_filter(self, module: dict[str, Any]) -> None:
        customers = [{"startup": "acme"}, {"startup": {"$id": "acme"}}, {"startup": "other"}]

        assert module["filter_link"]("customers", customers, "acme") == customers[:2]
        assert module["filter_link"]("customers", customers, {"$id": "other"}) == customers[2:]

    def test_unfiltered_link_keeps_items(self, module: dict[str, Any]) -> None:
        assert module["filter_link"]("founder", [1, 2]) == [1, 2]
        assert "founder" not in module["LINK_FILTERS"]


class TestGeneratedFunctions:
    """Tests for compute and filter code embedding."""

    @pytest.fixture
    def deal(self) -> Definition:
        return define(
            {
                "$type": "Deal",
                "runway": runway_months,
                "multiple": {"$compute": "bankBalance / monthlyBurn", "type": "number"},
                "label": {"$compute": "lambda r: r['name'].upper()"},
                "broken": {"$compute": "def broken(:"},
                "customers": b.ref("Customer").where(lambda c: c["status"] == "active"),
                "bigCustomers": "->Customer[status=active, mrr>=1000]",
                "churned": {"$link": ["<- Customer.deal"], "where": "status == 'churned'"},
            }
        )

    @pytest.fixture
    def module(self, deal: Definition) -> dict[str, Any]:
        return _load(generate_module(deal))

    def test_def_block_is_renamed(self, deal: Definition, module: dict[str, Any]) -> None:
        assert "def _compute_runway(record):" in generate_module(deal)
        assert module["compute"]("runway", {"bankBalance": 1200, "monthlyBurn": 100}) == 12

    def test_formula(self, module: dict[str, Any]) -> None:
        assert module["compute"]("multiple", {"bankBalance": 1000, "monthlyBurn": 250}) == 4

    def test_lambda_code_text(self, module: dict[str, Any]) -> None:
        assert module["compute"]("label", {"name": "acme"}) == "ACME"

    def test_invalid_code_raises_when_called(self, module: dict[str, Any]) -> None:
        with pytest.raises(NotImplementedError, match="broken"):
            module["compute"]("broken", {})

    def test_where_filter(self, module: dict[str, Any]) -> None:
        items = [{"status": "active"}, {"status": "churned"}]

        assert module["filter_link"]("customers", items) == items[:1]

    def test_bracket_filters(self, module: dict[str, Any]) -> None:
        items = [
            {"status": "active", "mrr": 5000},
            {"status": "active", "mrr": 10},
            {"status": "churned", "mrr": 9000},
            {"status": "active", "mrr": "unknown"},
        ]

        assert module["filter_link"]("bigCustomers", items) == items[:1]

    def test_where_formula_with_context(self, module: dict[str, Any]) -> None:
        items = [{"status": "churned"}, {"status": "active"}]

        assert module["filter_link"]("churned", items, {"$id": "deal-1"}) == items[:1]

    def test_parsed_definition_generates_same_behaviour(self, deal: Definition) -> None:
        """Code restored as opaque text still runs through the generated module."""
        namespace = _load(generate_module(parse(stringify(deal))))

        assert namespace["compute"]("multiple", {"bankBalance": 10, "monthlyBurn": 5}) == 2
        assert namespace["compute"]("runway", {"bankBalance": 10, "monthlyBurn": 5}) == 2
        assert namespace["filter_link"]("customers", [{"status": "active"}]) == [{"status": "active"}]
