"""Tests for the reference builder API."""

import pytest

from nouns.core import builder as b
from nouns.core.ir import AggregateFunction


class TestRef:
    """Tests for Ref construction and classification."""

    def test_dotted_segments_are_split(self) -> None:
        assert b.ref("stripe.balance", "available").path == ("stripe", "balance", "available")

    def test_attribute_chaining(self) -> None:
        reference = b.ref("github").repo.stars

        assert reference.path == ("github", "repo", "stars")
        assert str(reference) == "github.repo.stars"

    def test_private_attributes_are_not_chained(self) -> None:
        with pytest.raises(AttributeError):
            b.ref("github")._private  # noqa: B018

    def test_refs_are_immutable_values(self) -> None:
        assert b.ref("Customer") == b.ref("Customer")
        assert hash(b.ref("Customer")) == hash(b.ref("Customer"))

    @pytest.mark.parametrize(
        "reference,is_type,is_external",
        [
            (b.ref("Customer"), True, False),
            (b.ref("Stripe"), False, True),
            (b.ref("Stripe", "Account"), False, True),
            (b.ref("customers"), False, False),
            (b.ref("Customer", "name"), False, False),
        ],
    )
    def test_classification(self, reference: b.Ref, is_type: bool, is_external: bool) -> None:
        assert reference.is_type_reference is is_type
        assert reference.is_external is is_external


class TestQueryAndAggregates:
    """Tests for where, aggregate and fuzzy helpers."""

    def test_where_builds_query(self) -> None:
        def predicate(customer):
            return customer["business"] == "acme"

        query = b.ref("Customer").where(predicate)

        assert query.target == "Customer"
        assert query.predicate is predicate

    def test_aggregate_accepts_ref_or_text(self) -> None:
        assert b.sum(b.ref("subscriptions", "amount")) == b.sum("subscriptions.amount")
        assert b.count("customers").function == AggregateFunction.COUNT

    def test_fuzzy(self) -> None:
        assert b.fuzzy(b.ref("Industry")).target == "Industry"
