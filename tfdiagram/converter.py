"""
Terraform to Diagram Converter

Turns extracted Terraform resources into a diagram: components, relationships
inferred from references and foreign-key attributes, and a layered layout.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import ResourceMapping, ResourceMappingConfig, default_config
from .diagram import DiagramModel
from .layout import LayoutConfig, LayoutEngine
from .models import Component, ComponentKind, RelationshipKind
from .parser import SourceResource, parse_resources_from_file, references_in_expression
from .registry import ComponentRegistry

logger = logging.getLogger(__name__)

K = ComponentKind
R = RelationshipKind

# Area kinds are created first, outermost first, so placement can find them
CREATION_ORDER = {K.REGION: 0, K.VPC: 1, K.SUBNET: 2, K.SECURITY_GROUP: 3}

# (referencing resource type, referenced component kind) pairs that always mean containment
CONTAINMENT_PAIRS = frozenset(
    {
        ("aws_subnet", K.VPC),
        ("aws_instance", K.SUBNET),
        ("aws_instance", K.SECURITY_GROUP),
    }
)

# component kind -> [(foreign-key attribute, area kind it points at, label)]
FOREIGN_KEYS: Dict[ComponentKind, List[Tuple[str, ComponentKind, str]]] = {
    K.SUBNET: [("vpc_id", K.VPC, "contains")],
    K.EC2_INSTANCE: [
        ("subnet_id", K.SUBNET, "deployed in"),
        ("security_groups", K.SECURITY_GROUP, "secured by"),
        ("vpc_security_group_ids", K.SECURITY_GROUP, "secured by"),
    ],
    K.RDS_INSTANCE: [("vpc_security_group_ids", K.SECURITY_GROUP, "secured by")],
}

FOREIGN_KEY_ATTRIBUTES = frozenset(attr for keys in FOREIGN_KEYS.values() for attr, _, _ in keys)

RELATIONSHIP_LABELS = {
    R.CONTAINS: "contains",
    R.CONNECTS_TO: "connects to",
    R.DEPENDS_ON: "depends on",
    R.REFERENCES: "references",
}


def foreign_key_ids(value: Any) -> List[str]:
    """Ids a foreign-key value points at.

    ``${aws_vpc.main.id}`` or ``aws_vpc.main.id`` yield ``aws_vpc.main``; a
    literal such as ``vpc-0abc`` is returned as is. Lists are expanded.
    """
    if isinstance(value, list):
        ids: List[str] = []
        for item in value:
            ids.extend(foreign_key_ids(item))
        return ids
    if not isinstance(value, str) or not value:
        return []
    refs = list(references_in_expression(value))
    return refs or [value]


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        return value is True or (isinstance(value, str) and value.lower() == "true")
    return value


class TerraformToDiagramConverter:
    """Converts Terraform resources to a diagram."""

    def __init__(
        self,
        resources: Iterable[SourceResource],
        config: Optional[ResourceMappingConfig] = None,
        registry: Optional[ComponentRegistry] = None,
        layout_config: Optional[LayoutConfig] = None,
    ):
        self.resources = list(resources)
        self.config = config or default_config()
        self.registry = registry or ComponentRegistry.default()
        self.layout_engine = LayoutEngine(layout_config)
        self.diagram = DiagramModel("Terraform Diagram", self.registry)
        # resource id -> component
        self.component_map: Dict[str, Component] = {}

    def convert(self, base_file_name: Optional[Union[str, Path]] = None) -> DiagramModel:
        """Run the conversion.

        Args:
            base_file_name: Optional file the diagram is named after

        Returns:
            The populated diagram
        """
        logger.debug("Converting %d resources", len(self.resources))
        if base_file_name:
            self.diagram.name = f"{Path(base_file_name).stem} Diagram"

        self._create_components()
        self._create_relationships()
        self._create_area_containment()
        self.layout_engine.apply(self.component_map.values())

        self.diagram.source_marker = json.dumps(list(self.component_map))
        logger.debug(
            "Diagram has %d components and %d relationships",
            len(self.diagram.all_components()), len(self.diagram.relationships),
        )
        return self.diagram

    # Components

    def _creation_rank(self, resource: SourceResource) -> int:
        mapping = self.config.mapping_for(resource.kind)
        if mapping is None:
            return len(CREATION_ORDER)
        return CREATION_ORDER.get(mapping.component_kind, len(CREATION_ORDER))

    def _create_components(self) -> None:
        for resource in sorted(self.resources, key=self._creation_rank):
            mapping = self.config.mapping_for(resource.kind)
            if mapping is None:
                logger.debug("No mapping for %s, skipping", resource.kind)
                continue
            if resource.id in self.component_map:
                continue
            try:
                component = self._create_component(resource, mapping)
            except KeyError as e:
                logger.warning("Cannot create component for %s: %s", resource.id, e)
                continue
            self.component_map[resource.id] = component
            self.diagram.add_component(component)

    @staticmethod
    def _mapped_value(resource: SourceResource, mapping: ResourceMapping, component_attr: str) -> Any:
        """Value of the first mapped Terraform attribute present on the resource."""
        for source_attr in mapping.source_attributes_for(component_attr):
            value = resource.attributes.get(source_attr)
            if value is not None:
                return value
        return None

    def _create_component(self, resource: SourceResource, mapping: ResourceMapping) -> Component:
        spec = self.registry.spec(mapping.component_kind)

        name = self._mapped_value(resource, mapping, "name")
        if not isinstance(name, str) or not name or "${" in name:
            name = resource.name

        attributes = {}
        for attr, default in spec.defaults.items():
            value = self._mapped_value(resource, mapping, attr)
            if value is not None:
                attributes[attr] = _coerce(value, default)

        properties: Dict[str, Any] = {}
        for component_attr in dict.fromkeys(mapping.attribute_mapping.values()):
            if component_attr == "name" or component_attr in spec.defaults:
                continue
            value = self._mapped_value(resource, mapping, component_attr)
            if value is not None:
                properties[component_attr] = value
        for attr in FOREIGN_KEY_ATTRIBUTES:
            if attr in resource.attributes:
                properties[attr] = resource.attributes[attr]

        properties["terraformId"] = resource.id
        properties["terraformType"] = resource.kind
        properties["sourceFile"] = resource.source_file

        return self.registry.create(
            mapping.component_kind, name=name, attributes=attributes, properties=properties
        )

    # Relationships

    def _add_relationship(
        self, source: Component, target: Component, kind: RelationshipKind, label: str
    ) -> None:
        key = (source.id, target.id, kind)
        if any(r.key == key for r in self.diagram.relationships):
            return
        self.diagram.add_relationship(source.id, target.id, kind, label)

    def _classify(
        self, source: Component, target: Component, resource: SourceResource
    ) -> RelationshipKind:
        if self.registry.is_area(source.kind) and source.can_contain(target.kind):
            return R.CONTAINS
        if (resource.kind, source.kind) in CONTAINMENT_PAIRS:
            return R.CONTAINS
        if not self.registry.is_area(target.kind):
            return R.CONNECTS_TO
        return R.DEPENDS_ON

    def _create_relationships(self) -> None:
        """Relationships from explicit references.

        When resource A references resource B, the edge runs from B's
        component to A's.
        """
        for resource in self.resources:
            target = self.component_map.get(resource.id)
            if target is None:
                continue
            for dependency_id in sorted(resource.dependencies):
                source = self.component_map.get(dependency_id)
                if source is None or source is target:
                    continue
                kind = self._classify(source, target, resource)
                self._add_relationship(source, target, kind, RELATIONSHIP_LABELS[kind])

    def _create_area_containment(self) -> None:
        """Containment from foreign-key attributes such as ``vpc_id`` or ``subnet_id``."""
        components = list(self.component_map.values())

        areas: Dict[ComponentKind, Dict[str, Component]] = {}
        for component in components:
            if not self.registry.is_area(component.kind):
                continue
            table = areas.setdefault(component.kind, {})
            for key in (component.properties.get("id"), component.properties.get("terraformId")):
                if isinstance(key, str) and key:
                    table.setdefault(key, component)

        for component in components:
            for attr, area_kind, label in FOREIGN_KEYS.get(component.kind, []):
                for key in foreign_key_ids(component.properties.get(attr)):
                    area = areas.get(area_kind, {}).get(key)
                    if area is not None:
                        self._add_relationship(area, component, R.CONTAINS, label)


def convert_file(
    root_file: Union[str, Path],
    config: Optional[ResourceMappingConfig] = None,
    registry: Optional[ComponentRegistry] = None,
    layout_config: Optional[LayoutConfig] = None,
    max_workers: Optional[int] = None,
) -> DiagramModel:
    """Build a diagram for ``root_file`` and every file it depends on.

    Raises:
        FileNotFoundError: If ``root_file`` does not exist.
    """
    config = config or default_config()
    resources = parse_resources_from_file(root_file, config, max_workers=max_workers)
    converter = TerraformToDiagramConverter(resources, config, registry, layout_config)
    return converter.convert(root_file)
