"""
Diagram Export

Textual YAML/JSON projection of the diagram document and its reverse.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import yaml

from .diagram import DiagramModel
from .registry import ComponentRegistry

logger = logging.getLogger(__name__)

FORMATS = ("yaml", "json")


def diagram_to_yaml(diagram: DiagramModel) -> str:
    """Serialize a diagram to YAML. Absent fields are omitted, never null."""
    return yaml.safe_dump(diagram.to_document(), sort_keys=False, default_flow_style=False)


def diagram_to_json(diagram: DiagramModel, indent: int = 2) -> str:
    return json.dumps(diagram.to_document(), indent=indent)


def diagram_from_text(text: str, registry: Optional[ComponentRegistry] = None) -> DiagramModel:
    """Rebuild a diagram from YAML or JSON text.

    Raises:
        ValueError: If the text is not a diagram document.
    """
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Could not parse diagram document: {e}")
    if not isinstance(doc, dict):
        raise ValueError("Diagram document must be a mapping")
    return DiagramModel.from_document(doc, registry)


def format_for(path: Union[str, Path]) -> str:
    """Pick an export format from a file suffix. Defaults to YAML."""
    return "json" if Path(path).suffix.lower() == ".json" else "yaml"


def write_diagram(
    diagram: DiagramModel, path: Union[str, Path], fmt: Optional[str] = None
) -> Path:
    """Write a diagram document to ``path``.

    Args:
        diagram: Diagram to write
        path: Output file
        fmt: ``yaml`` or ``json``; guessed from the suffix when omitted

    Returns:
        The path written
    """
    path = Path(path)
    fmt = fmt or format_for(path)
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    text = diagram_to_json(diagram) if fmt == "json" else diagram_to_yaml(diagram)
    path.write_text(text, encoding="utf-8")
    logger.debug("Wrote %s diagram to %s", fmt, path)
    return path


def read_diagram(path: Union[str, Path], registry: Optional[ComponentRegistry] = None) -> DiagramModel:
    return diagram_from_text(Path(path).read_text(encoding="utf-8"), registry)
