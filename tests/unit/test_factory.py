"""Tests for define/extend/instantiate/derive."""

from typing import Any

import pytest

from nouns.core.errors import DefinitionError
from nouns.core.factory import Definition, define, is_instance, is_type
from nouns.core.ir import Instance, PrimitiveType, SourceKind


class TestDefine:
    """Tests for define() and Definition accessors."""

    def test_accessors(self, startup: Definition) -> None:
        assert startup.type == "Startup"
        assert startup.version == 1
        assert startup.context == "https://startups.do"
        assert startup.extends is None
        assert startup.id is None
        assert startup.kind == "type"

    def test_fields_and_cascades(self, startup: Definition) -> None:
        assert startup.fields["stage"].type == PrimitiveType.ENUM
        assert startup.fields["industry"].source == SourceKind.FUZZY
        assert set(startup.cascades) == {"icps", "founder", "customers"}

    def test_functions(self, startup: Definition) -> None:
        """Compute and Generate fields are exposed as functions."""
        assert set(startup.functions) == {"pitch", "arr"}

    def test_fields_by_source(self, startup: Definition) -> None:
        assert list(startup.fields_by_source(SourceKind.SYNC)) == ["stars"]
        assert set(startup.fields_by_source(SourceKind.COMPUTE)) == {"arr"}

    def test_raw_is_read_only(self, startup: Definition) -> None:
        with pytest.raises(TypeError):
            startup.raw["name"] = "Changed"  # type: ignore[index]

    def test_raw_is_a_copy(self, startup_raw: dict[str, Any]) -> None:
        definition = define(startup_raw)
        startup_raw["name"] = "Changed"

        assert definition.raw["name"] == "Company name"

    def test_repr(self, startup: Definition) -> None:
        assert repr(startup) == "Definition('Startup', version=1)"


class TestExtend:
    """Tests for single-parent inheritance."""

    def test_extend_merges_and_overrides(self, startup: Definition) -> None:
        saas = startup.extend({"$type": "SaaS", "name": "Product name", "churn": "Monthly churn (number)"})

        assert saas.type == "SaaS"
        assert saas.extends == "Startup"
        assert saas.fields["name"].description == "Product name"
        assert saas.fields["churn"].type == PrimitiveType.NUMBER
        assert "pitch" in saas.fields

    def test_extend_does_not_mutate_parent(self, startup: Definition) -> None:
        startup.extend({"$type": "SaaS", "churn": "Churn"})

        assert "churn" not in startup.fields
        assert startup.type == "Startup"

    def test_version_inheritance(self) -> None:
        parent = define({"$type": "Startup", "$version": 3})

        assert parent.extend({"$type": "SaaS"}).version == 3
        assert parent.extend({"$type": "SaaS", "$version": 5}).version == 5
        assert define({"$type": "Startup"}).extend({"$type": "SaaS"}).version == 1

    def test_extend_chain(self, startup: Definition) -> None:
        marketplace = startup.extend({"$type": "SaaS"}).extend({"$type": "Marketplace"})

        assert marketplace.extends == "SaaS"

    def test_context_is_inherited(self, startup: Definition) -> None:
        assert startup.extend({"$type": "SaaS"}).context == "https://startups.do"

    def test_extend_rejects_identity(self, startup: Definition) -> None:
        with pytest.raises(DefinitionError, match="instantiate"):
            startup.extend({"$id": "https://startups.do/acme"})

    def test_extend_drops_parent_identity(self) -> None:
        acme = define({"$type": "Startup", "$id": "https://startups.do/acme", "name": "Company name"})
        saas = acme.extend({"$type": "SaaS"})

        assert saas.id is None
        assert saas.kind == "type"
        assert is_type(saas)
        assert "$id" not in saas.raw
        assert acme.id == "https://startups.do/acme"


class TestInstantiate:
    """Tests for instantiate() and derive()."""

    def test_instantiate(self, startup: Definition) -> None:
        acme = startup.instantiate("https://startups.do/acme", {"name": "Acme", "$version": 9})

        assert acme.kind == "instance"
        assert acme.type == "Startup"
        assert acme.version == 1
        assert acme.context == "https://startups.do"
        assert acme.data == {"name": "Acme"}
        assert acme.slug == "acme"

    def test_type_override(self, startup: Definition) -> None:
        acme = startup.instantiate("acme", {"$type": "SaaS", "$context": "https://saas.do"})

        assert acme.type == "SaaS"
        assert acme.context == "https://saas.do"

    def test_derive_identity_without_type_is_instance(self, startup: Definition) -> None:
        result = startup.derive({"$id": "https://startups.do/acme", "name": "Acme"})

        assert isinstance(result, Instance)
        assert result.id == "https://startups.do/acme"
        assert result.data == {"name": "Acme"}

    def test_derive_type_is_definition(self, startup: Definition) -> None:
        result = startup.derive({"$type": "SaaS"})

        assert isinstance(result, Definition)
        assert result.extends == "Startup"

    def test_derive_as_instance(self, startup: Definition) -> None:
        result = startup.derive({"$id": "acme", "$type": "SaaS"}, as_instance=True)

        assert isinstance(result, Instance)
        assert result.type == "SaaS"

    def test_derive_as_instance_requires_identity(self, startup: Definition) -> None:
        with pytest.raises(DefinitionError):
            startup.derive({"name": "Acme"}, as_instance=True)

    def test_derive_identity_with_type_is_instance(self, startup: Definition) -> None:
        """A $type next to an identity overrides the instance type."""
        result = startup.derive({"$id": "acme", "$type": "SaaS", "name": "Acme"})

        assert isinstance(result, Instance)
        assert result.type == "SaaS"
        assert result.data == {"name": "Acme"}


class TestKindHelpers:
    """Tests for is_type/is_instance."""

    def test_type(self, startup: Definition) -> None:
        assert is_type(startup)
        assert not is_instance(startup)

    def test_instance(self, startup: Definition) -> None:
        acme = startup.instantiate("acme")

        assert is_instance(acme)
        assert not is_type(acme)

    def test_identified_definition_is_instance(self) -> None:
        acme = define({"$type": "Startup", "$id": "https://startups.do/acme"})

        assert is_instance(acme)
        assert not is_type(acme)
        assert acme.kind == "instance"

    @pytest.mark.parametrize("value", [None, "Startup", {"$type": "Startup"}])
    def test_other_values(self, value) -> None:
        assert not is_type(value)
        assert not is_instance(value)
