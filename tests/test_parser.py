"""Tests for the declaration normalizer."""
import copy

import pytest

from declarative_onboarding.config_engine import DeclarationParser, collapse_singletons
from declarative_onboarding.errors import ParseError


def example_declaration():
    return {
        "schemaVersion": "1.0.0",
        "class": "Device",
        "Common": {
            "class": "Tenant",
            "mySystem": {
                "class": "System",
                "hostname": "bigip1.example.com",
                "myDns": {
                    "class": "DNS",
                    "nameServers": ["1.2.3.4"],
                    "search": ["example.com"],
                },
                "myDbVariables": {
                    "class": "DbVariables",
                    "ui.advisory.enabled": "true",
                },
            },
            "Network": {
                "class": "Network",
                "myVlan": {
                    "class": "VLAN",
                    "tag": 100,
                    "interfaces": [{"name": "1.1", "tagged": True}],
                },
            },
        },
    }


class TestDeclarationParser:
    """Tests for DeclarationParser.parse."""

    def test_end_to_end_example(self):
        """DNS keeps its raw key, the VLAN gets a container-qualified name."""
        result = DeclarationParser().parse(example_declaration())

        assert result.tenants == ["Common"]
        parsed = result.parsed
        assert parsed["System"]["Common"]["DNS"]["myDns"]["nameServers"] == ["1.2.3.4"]
        assert parsed["Network"]["Common"]["VLAN"]["Network_myVlan"]["tag"] == 100

    def test_scalar_properties_filed_under_tenant(self):
        """Scalar container properties land directly in the tenant bag."""
        result = DeclarationParser().parse(example_declaration())

        assert result.parsed["System"]["Common"]["hostname"] == "bigip1.example.com"

    def test_class_discriminator_removed(self):
        """Leaf bags never carry their own class."""
        result = DeclarationParser().parse(example_declaration())

        assert "class" not in result.parsed["System"]["Common"]["DNS"]["myDns"]
        assert "class" not in result.parsed["Network"]["Common"]["VLAN"]["Network_myVlan"]

    def test_schema_version_and_root_class_ignored(self):
        """Root bookkeeping keys are not tenants."""
        result = DeclarationParser().parse(example_declaration())

        assert "schemaVersion" not in result.parsed
        assert "Device" not in result.parsed

    def test_parse_is_deterministic(self):
        """Same input, same output."""
        parser = DeclarationParser()

        assert parser.parse(example_declaration()).parsed == parser.parse(example_declaration()).parsed

    def test_input_not_modified(self):
        """The declaration is left untouched."""
        declaration = example_declaration()
        before = copy.deepcopy(declaration)

        result = DeclarationParser().parse(declaration)
        result.parsed["Network"]["Common"]["VLAN"]["Network_myVlan"]["interfaces"].append({})

        assert declaration == before

    def test_same_key_in_two_containers_gets_distinct_names(self):
        """Two non-System containers with the same sub-key do not collide."""
        declaration = {
            "Common": {
                "class": "Tenant",
                "netA": {"class": "Network", "vlan": {"class": "VLAN", "tag": 10}},
                "netB": {"class": "Network", "vlan": {"class": "VLAN", "tag": 20}},
            },
        }

        vlans = DeclarationParser().parse(declaration).parsed["Network"]["Common"]["VLAN"]

        assert vlans == {"netA_vlan": {"tag": 10}, "netB_vlan": {"tag": 20}}

    def test_system_name_collision_is_an_error(self):
        """Two System containers declaring the same key fail loudly."""
        declaration = {
            "Common": {
                "class": "Tenant",
                "sysA": {"class": "System", "dns": {"class": "DNS", "nameServers": ["1.1.1.1"]}},
                "sysB": {"class": "System", "dns": {"class": "DNS", "nameServers": ["2.2.2.2"]}},
            },
        }

        with pytest.raises(ParseError, match="duplicate name 'dns'"):
            DeclarationParser().parse(declaration)

    def test_collision_allowed_with_overwrite(self):
        """The compatibility flag keeps the last container."""
        declaration = {
            "Common": {
                "class": "Tenant",
                "sysA": {"class": "System", "hostname": "a.example.com"},
                "sysB": {"class": "System", "hostname": "b.example.com"},
            },
        }

        result = DeclarationParser(allow_overwrite=True).parse(declaration)

        assert result.parsed["System"]["Common"]["hostname"] == "b.example.com"

    def test_container_without_class_is_an_error(self):
        """Every container must name its domain."""
        declaration = {"Common": {"class": "Tenant", "mySystem": {"hostname": "x"}}}

        with pytest.raises(ParseError, match="missing class"):
            DeclarationParser().parse(declaration)

    def test_non_object_container_is_an_error(self):
        """Scalars are not containers."""
        declaration = {"Common": {"class": "Tenant", "label": "not a container"}}

        with pytest.raises(ParseError, match="expected an object"):
            DeclarationParser().parse(declaration)

    def test_non_object_declaration_is_an_error(self):
        with pytest.raises(ParseError):
            DeclarationParser().parse(["not", "a", "declaration"])

    def test_multiple_tenants(self):
        """Each tenant gets its own scope in every domain it uses."""
        declaration = {
            "Common": {"class": "Tenant", "sys": {"class": "System", "hostname": "a"}},
            "Other": {"class": "Tenant", "sys": {"class": "System", "hostname": "b"}},
        }

        result = DeclarationParser().parse(declaration)

        assert result.tenants == ["Common", "Other"]
        assert result.parsed["System"]["Common"]["hostname"] == "a"
        assert result.parsed["System"]["Other"]["hostname"] == "b"


class TestCollapseSingletons:
    """Tests for collapse_singletons."""

    def test_singleton_class_collapsed(self):
        """DNS -> {myDns: bag} becomes DNS -> bag."""
        parsed = DeclarationParser().parse(example_declaration()).parsed

        collapsed = collapse_singletons(parsed, {"DNS", "DbVariables"})

        system = collapsed["System"]["Common"]
        assert system["DNS"] == {"nameServers": ["1.2.3.4"], "search": ["example.com"]}
        assert system["DbVariables"] == {"ui.advisory.enabled": "true"}

    def test_other_classes_untouched(self):
        parsed = DeclarationParser().parse(example_declaration()).parsed

        collapsed = collapse_singletons(parsed, {"DNS"})

        assert collapsed["Network"]["Common"]["VLAN"] == parsed["Network"]["Common"]["VLAN"]
        assert collapsed["System"]["Common"]["hostname"] == "bigip1.example.com"

    def test_input_not_modified(self):
        parsed = DeclarationParser().parse(example_declaration()).parsed
        before = copy.deepcopy(parsed)

        collapse_singletons(parsed, {"DNS"})

        assert parsed == before

    def test_singleton_declared_twice_is_an_error(self):
        document = {"System": {"Common": {"DNS": {"a": {}, "b": {}}}}}

        with pytest.raises(ParseError, match="DNS may only be declared once"):
            collapse_singletons(document, {"DNS"})
