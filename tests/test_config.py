"""Tests for resource mapping configuration."""

import json

import pytest

from tfdiagram.config import (
    CONFIG_FILENAME,
    ConfigError,
    ResourceMapping,
    ResourceMappingConfig,
    default_config,
    find_config,
    load_config,
    load_or_default,
    save_config,
)
from tfdiagram.models import ComponentKind

K = ComponentKind


class TestResourceMapping:
    """Tests for ResourceMapping."""

    def test_accepts_name_without_patterns(self):
        """Test a mapping without patterns accepts every name."""
        assert ResourceMapping("aws_vpc", K.VPC).accepts_name("anything")

    def test_include_pattern(self):
        """Test the include pattern is a search, not a full match."""
        mapping = ResourceMapping("aws_vpc", K.VPC, include_pattern="prod")
        assert mapping.accepts_name("main_prod_vpc")
        assert not mapping.accepts_name("dev")

    def test_source_attributes_in_declaration_order(self):
        """Test several Terraform attributes can feed one component attribute."""
        mapping = default_config().mapping_for("aws_vpc")
        assert mapping.source_attributes_for("name") == ["tags.Name", "name"]
        assert mapping.source_attributes_for("cidrBlock") == ["cidr_block"]


class TestDefaultConfig:
    """Tests for the built-in mapping."""

    def test_covers_aws_resources(self):
        """Test the default policy maps the common AWS resource types."""
        config = default_config()
        assert config.source_kinds() == {
            "aws_vpc",
            "aws_subnet",
            "aws_instance",
            "aws_security_group",
            "aws_s3_bucket",
            "aws_db_instance",
            "aws_lambda_function",
            "aws_internet_gateway",
            "aws_route_table",
        }
        assert config.mapping_for("aws_db_instance").component_kind == K.RDS_INSTANCE
        assert config.mapping_for("aws_iam_role") is None


class TestFromDocument:
    """Tests for ResourceMappingConfig.from_document."""

    def test_aliases_and_unknown_kinds(self):
        """Test terraformType is accepted and unknown component kinds are skipped."""
        config = ResourceMappingConfig.from_document(
            {
                "version": "2.0",
                "resourceMappings": [
                    {
                        "terraformType": "aws_vpc",
                        "componentType": "VpcComponent",
                        "attributeMapping": {"cidr_block": "cidrBlock"},
                        "excludePattern": "^legacy",
                    },
                    {"sourceKind": "aws_eks_cluster", "componentKind": "EksComponent"},
                    "not a mapping",
                ],
            }
        )
        assert config.version == "2.0"
        assert config.source_kinds() == {"aws_vpc"}
        mapping = config.mapping_for("aws_vpc")
        assert mapping.attribute_mapping == {"cidr_block": "cidrBlock"}
        assert mapping.exclude_pattern == "^legacy"

    @pytest.mark.parametrize("doc", [[], "text", {"resourceMappings": {"aws_vpc": "VpcComponent"}}])
    def test_bad_shape(self, doc):
        """Test only the basic document shape is validated."""
        with pytest.raises(ConfigError):
            ResourceMappingConfig.from_document(doc)


class TestLoadSave:
    """Tests for reading and writing policy documents."""

    @pytest.mark.parametrize("filename", ["policy.json", "policy.yaml"])
    def test_round_trip(self, tmp_path, filename):
        """Test a saved policy loads back unchanged."""
        path = tmp_path / filename
        save_config(default_config(), path)
        assert load_config(path) == default_config()

    def test_json_written_as_json(self, tmp_path):
        """Test .json files are written as JSON."""
        path = tmp_path / "policy.json"
        save_config(default_config(), path)
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["resourceMappings"][0]["sourceKind"] == "aws_vpc"
        assert "includePattern" not in doc["resourceMappings"][0]

    def test_invalid_yaml(self, tmp_path):
        """Test unparseable documents raise ConfigError."""
        path = tmp_path / "policy.yaml"
        path.write_text("resourceMappings: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_find_and_fallback(self, tmp_path):
        """Test the policy file is discovered and a broken one falls back to defaults."""
        assert find_config(tmp_path) is None
        assert load_or_default(tmp_path) == default_config()

        (tmp_path / CONFIG_FILENAME).write_text("[]", encoding="utf-8")
        assert find_config(tmp_path) == tmp_path / CONFIG_FILENAME
        assert load_or_default(tmp_path) == default_config()

        custom = ResourceMappingConfig(resource_mappings=[ResourceMapping("aws_vpc", K.VPC)])
        save_config(custom, tmp_path / CONFIG_FILENAME)
        assert load_or_default(tmp_path).source_kinds() == {"aws_vpc"}
