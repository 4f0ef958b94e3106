"""
Component Registry

Per-kind capability table: default attributes, default size and, for area
kinds, the closed set of kinds they may directly contain.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from .models import Component, ComponentKind, Position, Size

logger = logging.getLogger(__name__)

K = ComponentKind

AREA_SIZE = Size(300, 200)
COMPONENT_SIZE = Size(100, 80)

# Keys every component document carries; everything else at the top level of a
# component document is a kind-specific attribute.
_DOCUMENT_KEYS = frozenset(
    {"id", "name", "type", "position", "size", "properties", "children", "allowedChildTypes"}
)


@dataclass(frozen=True)
class ComponentSpec:
    """Capabilities of one component kind."""

    kind: ComponentKind
    is_area: bool = False
    allowed_children: FrozenSet[ComponentKind] = frozenset()
    defaults: Dict[str, Any] = field(default_factory=dict)
    size: Size = field(default_factory=lambda: Size(COMPONENT_SIZE.width, COMPONENT_SIZE.height))


DEFAULT_SPECS: List[ComponentSpec] = [
    ComponentSpec(
        K.REGION,
        is_area=True,
        allowed_children=frozenset(
            {K.VPC, K.S3_BUCKET, K.RDS_INSTANCE, K.LAMBDA_FUNCTION, K.INTERNET_GATEWAY}
        ),
        defaults={
            "regionName": "us-east-1",
            "availabilityZones": ["us-east-1a", "us-east-1b", "us-east-1c"],
        },
        size=Size(800, 600),
    ),
    ComponentSpec(
        K.VPC,
        is_area=True,
        allowed_children=frozenset({K.SUBNET, K.SECURITY_GROUP, K.ROUTE_TABLE, K.INTERNET_GATEWAY}),
        defaults={"cidrBlock": "10.0.0.0/16"},
        size=AREA_SIZE,
    ),
    ComponentSpec(
        K.SUBNET,
        is_area=True,
        allowed_children=frozenset({K.EC2_INSTANCE, K.RDS_INSTANCE, K.LAMBDA_FUNCTION}),
        defaults={
            "cidrBlock": "10.0.1.0/24",
            "availabilityZone": "us-east-1a",
            "isPublic": False,
        },
        size=AREA_SIZE,
    ),
    ComponentSpec(
        K.SECURITY_GROUP,
        is_area=True,
        allowed_children=frozenset({K.EC2_INSTANCE, K.RDS_INSTANCE, K.LAMBDA_FUNCTION}),
        defaults={"description": None},
        size=AREA_SIZE,
    ),
    ComponentSpec(K.EC2_INSTANCE, defaults={"instanceType": "t2.micro", "ami": "ami-12345"}),
    ComponentSpec(K.INTERNET_GATEWAY),
    ComponentSpec(K.ROUTE_TABLE),
    ComponentSpec(K.S3_BUCKET),
    ComponentSpec(K.RDS_INSTANCE, defaults={"engine": None, "instanceClass": None}),
    ComponentSpec(K.LAMBDA_FUNCTION, defaults={"runtime": None, "handler": None}),
]


class ComponentRegistry:
    """Kind -> capability lookup.

    The rest of the system asks the registry two things: how to build a
    component of a kind, and whether a kind is an area.
    """

    def __init__(self, specs: Optional[List[ComponentSpec]] = None):
        self._specs: Dict[ComponentKind, ComponentSpec] = {}
        for spec in specs or []:
            self.register(spec)

    @classmethod
    def default(cls) -> "ComponentRegistry":
        return cls(DEFAULT_SPECS)

    def register(self, spec: ComponentSpec) -> None:
        if spec.kind in self._specs:
            logger.debug("Replacing component spec for %s", spec.kind.value)
        self._specs[spec.kind] = spec

    def kinds(self) -> List[ComponentKind]:
        return list(self._specs)

    def spec(self, kind: ComponentKind) -> ComponentSpec:
        try:
            return self._specs[kind]
        except KeyError:
            raise KeyError(f"No component registered for kind: {kind!r}")

    def is_area(self, kind: ComponentKind) -> bool:
        spec = self._specs.get(kind)
        return spec is not None and spec.is_area

    def create(
        self,
        kind: ComponentKind,
        name: str = "",
        attributes: Optional[Dict[str, Any]] = None,
        properties: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> Component:
        """Build a component of ``kind`` with its defaults filled in.

        Attributes given explicitly override the kind's defaults; ``None``
        values fall back to the default.
        """
        spec = self.spec(kind)
        merged = dict(spec.defaults)
        for key, value in (attributes or {}).items():
            if value is not None or key not in merged:
                merged[key] = value

        size = fields.pop("size", None) or Size(spec.size.width, spec.size.height)
        return Component(
            kind=kind,
            name=name,
            attributes=merged,
            properties=dict(properties or {}),
            allowed_child_kinds=spec.allowed_children,
            size=size,
            **fields,
        )

    def to_document(self, component: Component) -> Dict[str, Any]:
        """Serialize a component without its children.

        Kind-specific attributes are only emitted when they hold a value.
        """
        doc: Dict[str, Any] = {
            "id": component.id,
            "name": component.name,
            "type": component.kind.value,
            "position": component.position.to_document(),
            "size": component.size.to_document(),
            "properties": dict(component.properties),
        }
        for key, value in component.attributes.items():
            if value is not None and key not in _DOCUMENT_KEYS:
                doc[key] = value
        if self.is_area(component.kind):
            doc["allowedChildTypes"] = sorted(k.value for k in component.allowed_child_kinds)
        return doc

    def from_document(self, doc: Dict[str, Any]) -> Component:
        """Rebuild a single component (children are restored by the diagram)."""
        kind = ComponentKind(doc["type"])
        spec = self.spec(kind)
        attributes = {k: v for k, v in doc.items() if k not in _DOCUMENT_KEYS}
        return self.create(
            kind,
            name=doc.get("name", ""),
            attributes=attributes,
            properties=doc.get("properties") or {},
            id=doc["id"],
            position=Position.from_document(doc.get("position")),
            size=Size.from_document(doc.get("size"), spec.size),
        )
