"""
Resource Mapping Configuration

Declarative policy translating Terraform resource types into diagram
component kinds, attribute names and name filters.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml

from .models import ComponentKind

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "terraform-diagram.config.json"


class ConfigError(ValueError):
    """Raised when a policy document does not have the expected shape."""


@dataclass
class ResourceMapping:
    """Maps one Terraform resource type to a diagram component kind."""

    source_kind: str
    component_kind: ComponentKind
    # terraform attribute (dot notation) -> component attribute
    attribute_mapping: Dict[str, str] = field(default_factory=dict)
    include_pattern: Optional[str] = None
    exclude_pattern: Optional[str] = None

    def accepts_name(self, name: str) -> bool:
        """Apply the include/exclude name filters. Exclude wins over include."""
        if self.include_pattern and not re.search(self.include_pattern, name):
            return False
        if self.exclude_pattern and re.search(self.exclude_pattern, name):
            return False
        return True

    def source_attributes_for(self, component_attr: str) -> List[str]:
        """Terraform attributes mapped onto ``component_attr``, in declaration order."""
        return [src for src, dst in self.attribute_mapping.items() if dst == component_attr]

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "sourceKind": self.source_kind,
            "componentKind": self.component_kind.value,
            "attributeMapping": dict(self.attribute_mapping),
        }
        if self.include_pattern:
            doc["includePattern"] = self.include_pattern
        if self.exclude_pattern:
            doc["excludePattern"] = self.exclude_pattern
        return doc


@dataclass
class ResourceMappingConfig:
    """The full policy document."""

    version: str = "1.0"
    resource_mappings: List[ResourceMapping] = field(default_factory=list)

    def mapping_for(self, source_kind: str) -> Optional[ResourceMapping]:
        for mapping in self.resource_mappings:
            if mapping.source_kind == source_kind:
                return mapping
        return None

    def source_kinds(self) -> Set[str]:
        return {m.source_kind for m in self.resource_mappings}

    def to_document(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "resourceMappings": [m.to_document() for m in self.resource_mappings],
        }

    @classmethod
    def from_document(cls, doc: Any) -> "ResourceMappingConfig":
        """Build a config from a parsed document.

        Only the basic shape is checked. Entries naming an unknown component
        kind are skipped, which excludes that resource type.
        """
        if not isinstance(doc, dict):
            raise ConfigError("Policy document must be a mapping")
        entries = doc.get("resourceMappings", [])
        if not isinstance(entries, list):
            raise ConfigError("'resourceMappings' must be a list")

        mappings = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Ignoring malformed resource mapping: %r", entry)
                continue
            # 'terraformType' is the older name for 'sourceKind'
            source_kind = entry.get("sourceKind") or entry.get("terraformType")
            component_kind = entry.get("componentKind") or entry.get("componentType")
            if not source_kind or not component_kind:
                logger.warning("Ignoring resource mapping without kinds: %r", entry)
                continue
            try:
                kind = ComponentKind(component_kind)
            except ValueError:
                logger.warning(
                    "Unsupported component kind %s for %s, ignoring", component_kind, source_kind
                )
                continue
            mappings.append(
                ResourceMapping(
                    source_kind=source_kind,
                    component_kind=kind,
                    attribute_mapping=dict(entry.get("attributeMapping") or {}),
                    include_pattern=entry.get("includePattern"),
                    exclude_pattern=entry.get("excludePattern"),
                )
            )
        return cls(version=str(doc.get("version", "1.0")), resource_mappings=mappings)


def default_config() -> ResourceMappingConfig:
    """Default policy covering common AWS networking, compute, storage,
    database, serverless and gateway resources."""
    K = ComponentKind
    return ResourceMappingConfig(
        version="1.0",
        resource_mappings=[
            ResourceMapping(
                "aws_vpc",
                K.VPC,
                {"cidr_block": "cidrBlock", "tags.Name": "name", "id": "id", "name": "name"},
            ),
            ResourceMapping(
                "aws_subnet",
                K.SUBNET,
                {
                    "cidr_block": "cidrBlock",
                    "availability_zone": "availabilityZone",
                    "tags.Name": "name",
                    "map_public_ip_on_launch": "isPublic",
                    "id": "id",
                    "name": "name",
                },
            ),
            ResourceMapping(
                "aws_instance",
                K.EC2_INSTANCE,
                {
                    "instance_type": "instanceType",
                    "ami": "ami",
                    "tags.Name": "name",
                    "id": "id",
                    "name": "name",
                },
            ),
            ResourceMapping(
                "aws_security_group",
                K.SECURITY_GROUP,
                {"name": "name", "description": "description", "tags.Name": "name", "id": "id"},
            ),
            ResourceMapping(
                "aws_s3_bucket",
                K.S3_BUCKET,
                {"bucket": "name", "tags.Name": "name", "id": "id"},
            ),
            ResourceMapping(
                "aws_db_instance",
                K.RDS_INSTANCE,
                {
                    "engine": "engine",
                    "instance_class": "instanceClass",
                    "name": "name",
                    "tags.Name": "name",
                    "id": "id",
                },
            ),
            ResourceMapping(
                "aws_lambda_function",
                K.LAMBDA_FUNCTION,
                {
                    "function_name": "name",
                    "runtime": "runtime",
                    "handler": "handler",
                    "tags.Name": "name",
                    "id": "id",
                },
            ),
            ResourceMapping(
                "aws_internet_gateway",
                K.INTERNET_GATEWAY,
                {"tags.Name": "name", "id": "id", "name": "name"},
            ),
            ResourceMapping(
                "aws_route_table",
                K.ROUTE_TABLE,
                {"tags.Name": "name", "id": "id", "name": "name"},
            ),
        ],
    )


def load_config(path: Union[str, Path]) -> ResourceMappingConfig:
    """Load a policy document from a YAML or JSON file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            doc = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse policy document {path}: {e}")
    return ResourceMappingConfig.from_document(doc)


def save_config(config: ResourceMappingConfig, path: Union[str, Path]) -> None:
    """Write a policy document. ``.json`` files get JSON, anything else YAML."""
    path = Path(path)
    doc = config.to_document()
    with open(path, "w", encoding="utf-8") as f:
        if path.suffix == ".json":
            json.dump(doc, f, indent=2)
        else:
            yaml.safe_dump(doc, f, sort_keys=False)


def find_config(directory: Union[str, Path]) -> Optional[Path]:
    """Return the policy file in ``directory`` if there is one."""
    candidate = Path(directory) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def load_or_default(directory: Union[str, Path]) -> ResourceMappingConfig:
    """Load the policy from ``directory``, falling back to the default policy."""
    path = find_config(directory)
    if path is None:
        return default_config()
    try:
        return load_config(path)
    except (OSError, ConfigError) as e:
        logger.warning("Could not load %s, using default mapping: %s", path, e)
        return default_config()
