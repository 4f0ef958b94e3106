"""
Diagram Model

Owns the component tree and the relationship list, and keeps the two
consistent for containment edges.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from .models import Component, ComponentKind, Relationship, RelationshipKind, generate_id
from .registry import ComponentRegistry

logger = logging.getLogger(__name__)


class DiagramModel:
    """A diagram: a region root, every component under it, and relationships.

    Components are held in a flat id index; areas reference their children by
    id. A component id is listed by at most one area at any time.
    """

    def __init__(
        self,
        name: str,
        registry: Optional[ComponentRegistry] = None,
        region_name: str = "us-east-1",
    ):
        self.id = generate_id()
        self.name = name
        self.registry = registry or ComponentRegistry.default()
        self.relationships: List[Relationship] = []
        self.source_marker: Optional[str] = None
        self._components: Dict[str, Component] = {}
        self.region = self.registry.create(
            ComponentKind.REGION, name="Region", attributes={"regionName": region_name}
        )
        self._components[self.region.id] = self.region

    # Queries

    def find_component(self, component_id: str) -> Optional[Component]:
        return self._components.get(component_id)

    def __contains__(self, component_id: str) -> bool:
        return component_id in self._components

    def _walk(self, component: Component) -> Iterator[Component]:
        yield component
        for child_id in component.children:
            child = self._components.get(child_id)
            if child is not None:
                yield from self._walk(child)

    def all_components(self) -> List[Component]:
        """Every component below the region root, depth-first."""
        return list(self._walk(self.region))[1:]

    def area_components(self) -> List[Component]:
        """Region root plus every placed area, depth-first in child order."""
        return [c for c in self._walk(self.region) if self.registry.is_area(c.kind)]

    def parent_of(self, component_id: str) -> Optional[Component]:
        for component in self._components.values():
            if component_id in component.children:
                return component
        return None

    def children_of(self, component_id: str) -> List[Component]:
        component = self._components.get(component_id)
        if component is None:
            return []
        return [self._components[cid] for cid in component.children if cid in self._components]

    def relationships_of(self, component_id: str) -> List[Relationship]:
        return [
            r for r in self.relationships
            if r.source_id == component_id or r.target_id == component_id
        ]

    # Mutation

    def add_component(self, component: Component) -> Component:
        """Add a component under the first area that accepts its kind.

        Areas are scanned depth-first starting at the region root, so the
        order in which areas were added decides where a component lands when
        several could hold it. Falls back to the region root.

        Returns:
            The area the component was placed in.
        """
        if component.id in self._components:
            raise ValueError(f"Component already in diagram: {component.id}")

        self._components[component.id] = component
        for area in self.area_components():
            if area.can_contain(component.kind):
                area.add_child(component.id)
                logger.debug("Placed %s in area %s", component, area)
                return area

        self.region.add_child(component.id)
        logger.debug("Placed %s in region root", component)
        return self.region

    def _detach(self, component_id: str) -> None:
        for component in self._components.values():
            component.remove_child(component_id)

    def _is_ancestor(self, ancestor_id: str, component_id: str) -> bool:
        parent = self.parent_of(component_id)
        while parent is not None:
            if parent.id == ancestor_id:
                return True
            parent = self.parent_of(parent.id)
        return False

    def add_relationship(
        self,
        source_id: str,
        target_id: str,
        kind: RelationshipKind,
        label: Optional[str] = None,
    ) -> Optional[Relationship]:
        """Record a relationship between two components.

        A ``contains`` edge from an area also moves the target under that
        area: any previous containment record for the target is dropped and
        the target is detached from its current parent first. If the area
        does not accept the target's kind nothing changes at all.

        Returns:
            The new relationship, or None if it was rejected.
        """
        source = self._components.get(source_id)
        target = self._components.get(target_id)
        if source is None or target is None:
            logger.error(
                "Cannot create %s relationship %s -> %s: component not found",
                kind.value, source_id, target_id,
            )
            return None

        if kind == RelationshipKind.CONTAINS and self.registry.is_area(source.kind):
            if source_id == target_id:
                logger.error("%s cannot contain itself", source)
                return None
            if not source.can_contain(target.kind):
                logger.error("%s cannot contain %s", source.kind.value, target.kind.value)
                return None
            if self._is_ancestor(target_id, source_id):
                logger.error("%s cannot contain its own ancestor %s", source, target)
                return None

            self.relationships = [
                r for r in self.relationships
                if not (r.kind == RelationshipKind.CONTAINS and r.target_id == target_id)
            ]
            self._detach(target_id)
            source.add_child(target_id)

        relationship = Relationship(source_id, target_id, kind, label)
        self.relationships.append(relationship)
        return relationship

    def remove_component(self, component_id: str) -> None:
        """Remove a component, its descendants and every relationship touching them.

        The region root cannot be removed.
        """
        if component_id == self.region.id:
            logger.debug("Refusing to remove the region root")
            return
        component = self._components.get(component_id)
        if component is None:
            return

        for child_id in list(component.children):
            self.remove_component(child_id)

        self._detach(component_id)
        self.relationships = [
            r for r in self.relationships
            if r.source_id != component_id and r.target_id != component_id
        ]
        del self._components[component_id]

    # Documents

    def _component_document(self, component: Component) -> Dict[str, Any]:
        doc = self.registry.to_document(component)
        if self.registry.is_area(component.kind):
            doc["children"] = [
                self._component_document(child) for child in self.children_of(component.id)
            ]
        return doc

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "region": self._component_document(self.region),
            "relationships": [r.to_document() for r in self.relationships],
        }
        if self.source_marker is not None:
            doc["sourceMarker"] = self.source_marker
        return doc

    def _restore_children(self, area: Component, doc: Dict[str, Any]) -> None:
        for child_doc in doc.get("children") or []:
            child = self.registry.from_document(child_doc)
            if child.id in self._components:
                logger.warning("Skipping duplicate component %s in document", child.id)
                continue
            self._components[child.id] = child
            area.children.append(child.id)
            if self.registry.is_area(child.kind):
                self._restore_children(child, child_doc)

    @classmethod
    def from_document(
        cls, doc: Dict[str, Any], registry: Optional[ComponentRegistry] = None
    ) -> "DiagramModel":
        """Rebuild a diagram, including the full area tree, from its document."""
        diagram = cls(doc.get("name") or "Untitled Diagram", registry)
        diagram.id = doc.get("id") or diagram.id
        diagram.source_marker = doc.get("sourceMarker")

        region_doc = doc.get("region")
        if region_doc:
            diagram.region = diagram.registry.from_document(region_doc)
            diagram._components = {diagram.region.id: diagram.region}
            diagram._restore_children(diagram.region, region_doc)

        diagram.relationships = [
            Relationship.from_document(r) for r in doc.get("relationships") or []
        ]
        return diagram

    def __str__(self) -> str:
        return f"Diagram: {self.name} ({self.id})"
