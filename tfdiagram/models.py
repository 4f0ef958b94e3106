"""
Diagram Models

Typed components and relationships that make up a diagram.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class ComponentKind(str, Enum):
    """Closed set of component kinds a diagram can hold."""

    REGION = "RegionComponent"
    VPC = "VpcComponent"
    SUBNET = "SubnetComponent"
    SECURITY_GROUP = "SecurityGroupComponent"
    EC2_INSTANCE = "EC2InstanceComponent"
    INTERNET_GATEWAY = "InternetGatewayComponent"
    ROUTE_TABLE = "RouteTableComponent"
    S3_BUCKET = "S3BucketComponent"
    RDS_INSTANCE = "RDSInstanceComponent"
    LAMBDA_FUNCTION = "LambdaFunctionComponent"


class RelationshipKind(str, Enum):
    """Types of relationships between components."""

    CONTAINS = "contains"
    CONNECTS_TO = "connects_to"
    DEPENDS_ON = "depends_on"
    REFERENCES = "references"


def generate_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Position:
    x: float = 0
    y: float = 0

    def to_document(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Position":
        doc = doc or {}
        return cls(x=doc.get("x", 0), y=doc.get("y", 0))


@dataclass
class Size:
    width: float = 100
    height: float = 80

    def to_document(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]], default: "Size") -> "Size":
        if not doc:
            return Size(default.width, default.height)
        return cls(
            width=doc.get("width", default.width),
            height=doc.get("height", default.height),
        )


@dataclass
class Component:
    """A diagram component.

    Identity is ``id``. ``kind`` is a tag; what a component may do is looked up
    in the registry, not derived from its Python type. Area components carry
    their children as an ordered list of component ids and the set of kinds
    they may directly contain. Non-area components leave both empty.

    ``attributes`` holds the kind-specific fields (``cidrBlock``,
    ``instanceType``, ...). ``properties`` is an opaque metadata bag the
    pipeline uses to remember where a component came from.
    """

    kind: ComponentKind
    name: str = ""
    id: str = field(default_factory=generate_id)
    position: Position = field(default_factory=Position)
    size: Size = field(default_factory=Size)
    attributes: Dict[str, Any] = field(default_factory=dict)
    properties: Dict[str, Any] = field(default_factory=dict)
    children: List[str] = field(default_factory=list)
    allowed_child_kinds: FrozenSet[ComponentKind] = frozenset()

    def can_contain(self, kind: ComponentKind) -> bool:
        """Check if this component may directly contain the given kind."""
        return kind in self.allowed_child_kinds

    def add_child(self, component_id: str) -> None:
        if component_id not in self.children:
            self.children.append(component_id)

    def remove_child(self, component_id: str) -> bool:
        """Remove a child id. Returns True if it was present."""
        if component_id in self.children:
            self.children.remove(component_id)
            return True
        return False

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name} ({self.id})"


@dataclass
class Relationship:
    """A typed edge between two components."""

    source_id: str
    target_id: str
    kind: RelationshipKind
    label: Optional[str] = None
    id: str = field(default_factory=generate_id)

    @property
    def key(self) -> tuple:
        return (self.source_id, self.target_id, self.kind)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "type": self.kind.value,
        }
        if self.label:
            doc["label"] = self.label
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Relationship":
        return cls(
            source_id=doc["sourceId"],
            target_id=doc["targetId"],
            kind=RelationshipKind(doc.get("type", RelationshipKind.CONNECTS_TO.value)),
            label=doc.get("label"),
            id=doc.get("id") or generate_id(),
        )
