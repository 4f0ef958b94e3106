"""tfdiagram - Convert Terraform code into hierarchical architecture diagrams."""

__version__ = "1.0.0"

from .config import ConfigError, ResourceMapping, ResourceMappingConfig, default_config
from .converter import TerraformToDiagramConverter, convert_file
from .diagram import DiagramModel
from .layout import LayoutConfig, LayoutEngine
from .models import Component, ComponentKind, Relationship, RelationshipKind
from .parser import ResourceExtractor, SourceResource
from .registry import ComponentRegistry
from .resolver import ModuleDependencyResolver

__all__ = [
    "__version__",
    "ConfigError",
    "ResourceMapping",
    "ResourceMappingConfig",
    "default_config",
    "TerraformToDiagramConverter",
    "convert_file",
    "DiagramModel",
    "LayoutConfig",
    "LayoutEngine",
    "Component",
    "ComponentKind",
    "Relationship",
    "RelationshipKind",
    "ResourceExtractor",
    "SourceResource",
    "ComponentRegistry",
    "ModuleDependencyResolver",
]
