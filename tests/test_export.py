"""Tests for YAML/JSON diagram export."""

import json

import pytest
import yaml

from tfdiagram.converter import convert_file
from tfdiagram.diagram import DiagramModel
from tfdiagram.export import (
    diagram_from_text,
    diagram_to_json,
    diagram_to_yaml,
    format_for,
    read_diagram,
    write_diagram,
)
from tfdiagram.models import ComponentKind


class TestExport:
    """Tests for textual export."""

    def test_yaml_omits_absent_fields(self, web_stack_file):
        """Test attributes without a value are left out instead of written as null."""
        doc = yaml.safe_load(diagram_to_yaml(convert_file(web_stack_file)))

        def walk(component):
            yield component
            for child in component.get("children", []):
                yield from walk(child)

        components = {c["properties"].get("terraformId"): c for c in walk(doc["region"])}
        vpc = components["aws_vpc.main"]
        assert vpc["type"] == "VpcComponent"
        assert vpc["cidrBlock"] == "10.0.0.0/16"
        assert "description" not in components["aws_instance.web"]
        assert "label" in doc["relationships"][0]
        assert "sourceMarker" in doc

    def test_json_matches_document(self, vpc_subnet_file):
        """Test JSON export is the plain diagram document."""
        diagram = convert_file(vpc_subnet_file)
        assert json.loads(diagram_to_json(diagram)) == diagram.to_document()

    @pytest.mark.parametrize("to_text", [diagram_to_yaml, diagram_to_json])
    def test_from_text(self, vpc_subnet_file, to_text):
        """Test both formats read back into an equal diagram."""
        diagram = convert_file(vpc_subnet_file)
        restored = diagram_from_text(to_text(diagram))
        assert restored.to_document() == diagram.to_document()

    def test_from_text_rejects_non_mapping(self):
        """Test text that is not a diagram document is rejected."""
        with pytest.raises(ValueError):
            diagram_from_text("- just\n- a list\n")


class TestWriteDiagram:
    """Tests for writing diagram files."""

    def test_format_for(self):
        """Test the format follows the file suffix."""
        assert format_for("out.json") == "json"
        assert format_for("out.yaml") == "yaml"
        assert format_for("out") == "yaml"

    def test_write_and_read(self, vpc_subnet_file, tmp_path):
        """Test a written diagram reads back."""
        diagram = convert_file(vpc_subnet_file)
        path = write_diagram(diagram, tmp_path / "diagram.json")
        assert json.loads(path.read_text(encoding="utf-8"))["name"] == "main Diagram"
        assert read_diagram(path).to_document() == diagram.to_document()

    def test_unknown_format(self, vpc_subnet_file, tmp_path):
        """Test an unsupported format is rejected."""
        with pytest.raises(ValueError):
            write_diagram(convert_file(vpc_subnet_file), tmp_path / "out.xml", fmt="xml")

    def test_unset_attributes_not_null(self):
        """Test kind attributes without a default are absent from YAML."""
        diagram = DiagramModel("Database")
        diagram.add_component(
            diagram.registry.create(ComponentKind.RDS_INSTANCE, name="db", attributes={"engine": "mysql"})
        )
        doc = yaml.safe_load(diagram_to_yaml(diagram))
        [rds] = doc["region"]["children"]
        assert rds["engine"] == "mysql"
        assert "instanceClass" not in rds
        assert "null" not in diagram_to_yaml(diagram)
