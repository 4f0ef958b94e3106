"""
Layout Engine

Computes positions for diagram components in horizontal layers by kind.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Component, ComponentKind, Position

K = ComponentKind

DEFAULT_LAYER_ORDER: Tuple[ComponentKind, ...] = (
    K.VPC,
    K.SUBNET,
    K.SECURITY_GROUP,
    K.ROUTE_TABLE,
    K.INTERNET_GATEWAY,
    K.EC2_INSTANCE,
    K.RDS_INSTANCE,
    K.LAMBDA_FUNCTION,
    K.S3_BUCKET,
)


@dataclass
class LayoutConfig:
    """Configuration for layout engine."""
    grid_spacing: int = 150
    offset_x: int = 100
    offset_y: int = 100
    layer_order: Tuple[ComponentKind, ...] = field(default=DEFAULT_LAYER_ORDER)


class LayoutEngine:
    """Lays components out in layers, one layer per kind."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def compute_layout(self, components: Iterable[Component]) -> Dict[str, Position]:
        """
        Compute positions for components.

        Layers follow ``layer_order`` top to bottom. Within a layer components
        run left to right in the order given. A layer with no components takes
        no vertical space. Kinds outside ``layer_order`` are not positioned.
        """
        layers: Dict[ComponentKind, List[Component]] = {kind: [] for kind in self.config.layer_order}
        for component in components:
            if component.kind in layers:
                layers[component.kind].append(component)

        positions: Dict[str, Position] = {}
        y = self.config.offset_y
        for kind in self.config.layer_order:
            layer = layers[kind]
            x = self.config.offset_x
            for component in layer:
                positions[component.id] = Position(x=x, y=y)
                x += self.config.grid_spacing
            if layer:
                y += self.config.grid_spacing
        return positions

    def apply(self, components: Iterable[Component]) -> Dict[str, Position]:
        """Compute positions and write them onto the components."""
        components = list(components)
        positions = self.compute_layout(components)
        for component in components:
            if component.id in positions:
                component.position = positions[component.id]
        return positions
