"""
Terraform Resource Parser

Extracts typed resource declarations from Terraform files. The HCL2 parser is
tried first; when it fails or finds nothing, a regex scan picks up whatever it
can.
"""

import logging
import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

import hcl2
from lark.exceptions import LarkError

from .config import ResourceMappingConfig

logger = logging.getLogger(__name__)

# Reference roots that never name a resource
NON_RESOURCE_ROOTS = frozenset(
    {"var", "local", "data", "module", "count", "each", "path", "self", "terraform"}
)

# Top-level block types that are not resource kinds
_TOP_LEVEL_BLOCKS = frozenset(
    {"resource", "data", "module", "variable", "locals", "output", "provider", "terraform"}
)

# Keys python-hcl2 adds when asked for line metadata
_META_KEYS = frozenset({"__start_line__", "__end_line__"})

INTERPOLATION_PATTERN = re.compile(r"\$\{([^}]*)\}")
REFERENCE_PATTERN = re.compile(r"(?<![\w.\-])([A-Za-z_][\w-]*)\.([A-Za-z_][\w-]*)")

RESOURCE_HEADER_PATTERN = re.compile(r'resource\s+"([^"]+)"\s+"([^"]+)"\s*\{')
ATTRIBUTE_PATTERN = re.compile(
    r"^[ \t]*([A-Za-z0-9_\-]+)[ \t]*=[ \t]*"
    r"(?:\"([^\"\n]*)\"|'([^'\n]*)'|\[([^\]\n]*)\]|([A-Za-z0-9_.\-*]+))",
    re.MULTILINE,
)
TAGS_PATTERN = re.compile(r"\btags\s*=?\s*\{([^{}]*)\}")
TAG_PATTERN = re.compile(
    r"([A-Za-z0-9_\-]+|\"[^\"\n]+\")\s*=\s*(?:\"([^\"\n]*)\"|'([^'\n]*)'|([A-Za-z0-9_.\-]+))"
)
STRING_PATTERN = re.compile(r'"(?:[^"\\\n]|\\.)*"')
COMMENT_PATTERN = re.compile(r"^\s*(?:#|//).*$", re.MULTILINE)


@dataclass(frozen=True)
class SourceResource:
    """A resource declaration found in a Terraform file.

    ``attributes`` uses flattened dot-notation keys (``tags.Name``); list
    values are kept as lists. ``dependencies`` holds the ids of other
    resources this one references.
    """

    kind: str
    name: str
    attributes: Dict[str, Any]
    dependencies: FrozenSet[str]
    source_file: str

    @property
    def id(self) -> str:
        return f"{self.kind}.{self.name}"


def flatten_attributes(obj: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into dot-notation keys. Lists stay as values."""
    result: Dict[str, Any] = {}
    for key, value in obj.items():
        new_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            result.update(flatten_attributes(value, new_key))
        else:
            result[new_key] = value
    return result


def references_in_expression(expression: str) -> Iterator[str]:
    """Yield ``kind.name`` ids named by a Terraform expression."""
    for match in REFERENCE_PATTERN.finditer(expression):
        root, name = match.groups()
        # Resource types are always <provider>_<type>
        if root in NON_RESOURCE_ROOTS or "_" not in root:
            continue
        yield f"{root}.{name}"


def find_references(text: str) -> Set[str]:
    """Collect resource ids referenced from ``${...}`` interpolations in a string."""
    refs: Set[str] = set()
    for match in INTERPOLATION_PATTERN.finditer(text):
        refs.update(references_in_expression(match.group(1)))
    return refs


def extract_dependencies(value: Any) -> Set[str]:
    """Recursively scan strings in a value (including lists and maps) for references."""
    found: Set[str] = set()
    if isinstance(value, str):
        found.update(find_references(value))
    elif isinstance(value, list):
        for item in value:
            found.update(extract_dependencies(item))
    elif isinstance(value, dict):
        for item in value.values():
            found.update(extract_dependencies(item))
    return found


def _unquote(value: Any) -> Any:
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _normalize(value: Any) -> Any:
    """Drop parser metadata and literal quotes some python-hcl2 versions keep."""
    if isinstance(value, dict):
        return {_unquote(k): _normalize(v) for k, v in value.items() if k not in _META_KEYS}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return _unquote(value)


def _block_body(content: str, start: int) -> Tuple[str, int]:
    """Return the text up to the brace closing the block opened before ``start``.

    Braces inside string literals are ignored. An unterminated block runs to
    the end of the content.
    """
    depth = 1
    in_string = False
    i = start
    while i < len(content):
        ch = content[i]
        if in_string:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[start:i], i + 1
        i += 1
    return content[start:], len(content)


def _top_level(body: str) -> str:
    """Blank out the contents of nested blocks, keeping line structure."""
    out = []
    depth = 0
    in_string = False
    for ch in body:
        if ch == "\n":
            out.append(ch)
            in_string = False
            continue
        if depth == 0 or ch in "{}":
            out.append(ch)
        if in_string:
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth = max(0, depth - 1)
    return "".join(out)


def _bare_value(value: str) -> Union[str, bool]:
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def _list_value(text: str) -> List[str]:
    items = []
    for item in text.split(","):
        item = item.strip().strip("'\"")
        if item:
            items.append(item)
    return items


def extract_attributes_with_regex(body: str) -> Dict[str, Any]:
    """Best-effort ``key = value`` extraction from a resource body.

    Only top-level assignments are read, plus ``tags`` entries as ``tags.Key``.
    Anything that does not look like a simple value is left out.
    """
    attributes: Dict[str, Any] = {}
    for match in ATTRIBUTE_PATTERN.finditer(_top_level(body)):
        key, double_quoted, single_quoted, list_body, bare = match.groups()
        if double_quoted is not None:
            attributes[key] = double_quoted
        elif single_quoted is not None:
            attributes[key] = single_quoted
        elif list_body is not None:
            attributes[key] = _list_value(list_body)
        elif bare is not None:
            attributes[key] = _bare_value(bare)

    for tags_match in TAGS_PATTERN.finditer(body):
        for tag in TAG_PATTERN.finditer(tags_match.group(1)):
            tag_key = tag.group(1).strip('"')
            value = next((g for g in tag.groups()[1:] if g is not None), None)
            if value is not None:
                attributes[f"tags.{tag_key}"] = value
    return attributes


def extract_dependencies_with_regex(body: str) -> Set[str]:
    """Find references in raw HCL text, looking inside strings only at interpolations."""

    def keep_interpolations(match: re.Match) -> str:
        return " " + " ".join(INTERPOLATION_PATTERN.findall(match.group(0))) + " "

    code = STRING_PATTERN.sub(keep_interpolations, body)
    return set(references_in_expression(code))


class ResourceExtractor:
    """Turns Terraform file content into SourceResource records.

    Args:
        kinds: Resource types to keep. None keeps every resource.
        max_workers: Parse files on a thread pool of this size when greater than 1.
    """

    def __init__(self, kinds: Optional[Iterable[str]] = None, max_workers: Optional[int] = None):
        self.kinds: Optional[FrozenSet[str]] = frozenset(kinds) if kinds is not None else None
        self.max_workers = max_workers

    def _wanted(self, kind: str) -> bool:
        return self.kinds is None or kind in self.kinds

    def extract(self, content: str, source_file: str = "") -> List[SourceResource]:
        """Extract resources from one file's content."""
        resources: List[SourceResource] = []
        try:
            parsed = hcl2.loads(content)
        except (LarkError, ValueError) as e:
            logger.warning("Could not parse HCL in %s, trying regex fallback: %s", source_file, e)
        else:
            resources = self._from_hcl(_normalize(parsed), source_file)

        if not resources:
            resources = self._from_regex(content, source_file)
        return resources

    def _iter_named(self, kind: str, named: Any) -> Iterator[Tuple[str, str, Dict[str, Any]]]:
        entries = named if isinstance(named, list) else [named]
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            for name, body in entry.items():
                # Handle list configs (HCL2 can return lists)
                if isinstance(body, list):
                    body = body[0] if body else {}
                if isinstance(body, dict):
                    yield kind, name, body

    def _iter_declarations(self, parsed: Dict[str, Any]) -> Iterator[Tuple[str, str, Dict[str, Any]]]:
        # Records keyed first by kind, then by name
        for key, value in parsed.items():
            if key in _TOP_LEVEL_BLOCKS:
                continue
            if self.kinds is not None and key in self.kinds:
                yield from self._iter_named(key, value)

        # A single "resource" block keyed the same way
        blocks = parsed.get("resource") or []
        if isinstance(blocks, dict):
            blocks = [blocks]
        for block in blocks:
            if not isinstance(block, dict):
                continue
            for kind, named in block.items():
                if self._wanted(kind):
                    yield from self._iter_named(kind, named)

    def _from_hcl(self, parsed: Dict[str, Any], source_file: str) -> List[SourceResource]:
        resources = []
        for kind, name, body in self._iter_declarations(parsed):
            resource_id = f"{kind}.{name}"
            dependencies = extract_dependencies(body)
            dependencies.discard(resource_id)
            resources.append(
                SourceResource(
                    kind=kind,
                    name=name,
                    attributes=flatten_attributes(body),
                    dependencies=frozenset(dependencies),
                    source_file=source_file,
                )
            )
        return resources

    def _from_regex(self, content: str, source_file: str) -> List[SourceResource]:
        resources = []
        content = COMMENT_PATTERN.sub("", content)
        for match in RESOURCE_HEADER_PATTERN.finditer(content):
            kind, name = match.group(1), match.group(2)
            if not self._wanted(kind):
                continue
            body, _ = _block_body(content, match.end())
            dependencies = extract_dependencies_with_regex(body)
            dependencies.discard(f"{kind}.{name}")
            resources.append(
                SourceResource(
                    kind=kind,
                    name=name,
                    attributes=extract_attributes_with_regex(body),
                    dependencies=frozenset(dependencies),
                    source_file=source_file,
                )
            )
        if resources:
            logger.debug("Regex fallback found %d resources in %s", len(resources), source_file)
        return resources

    def extract_file(self, file_path: Union[str, Path]) -> List[SourceResource]:
        """Read and extract one file. Unreadable files yield nothing."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", file_path, e)
            return []
        return self.extract(content, str(file_path))

    def extract_files(self, file_paths: Iterable[Union[str, Path]]) -> List[SourceResource]:
        """Extract resources from many files.

        Results are keyed by resource id and assembled in sorted path order,
        so the outcome does not depend on which file finished parsing first.
        The first declaration of an id wins.
        """
        paths = sorted({str(p) for p in file_paths})
        if self.max_workers and self.max_workers > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                per_file = list(executor.map(self.extract_file, paths))
        else:
            per_file = [self.extract_file(p) for p in paths]

        by_id: Dict[str, SourceResource] = {}
        for resources in per_file:
            for resource in resources:
                if resource.id in by_id:
                    logger.debug(
                        "Duplicate resource %s in %s, keeping %s",
                        resource.id, resource.source_file, by_id[resource.id].source_file,
                    )
                    continue
                by_id[resource.id] = resource
        return list(by_id.values())


def filter_resources(
    resources: Iterable[SourceResource], config: ResourceMappingConfig
) -> List[SourceResource]:
    """Keep resources whose kind is mapped and whose name passes the mapping's filters."""
    kept = []
    dropped: Counter = Counter()
    for resource in resources:
        mapping = config.mapping_for(resource.kind)
        if mapping is None or not mapping.accepts_name(resource.name):
            dropped[resource.kind] += 1
            continue
        kept.append(resource)

    if dropped:
        logger.debug("Filtered out resources by type: %s", dict(dropped))
    return kept


def parse_resources_from_file(
    root_file: Union[str, Path],
    config: ResourceMappingConfig,
    max_workers: Optional[int] = None,
) -> List[SourceResource]:
    """Resolve every file reachable from ``root_file`` and extract mapped resources.

    Raises:
        FileNotFoundError: If ``root_file`` does not exist.
    """
    from .resolver import ModuleDependencyResolver

    files = ModuleDependencyResolver().resolve(root_file)
    extractor = ResourceExtractor(config.source_kinds(), max_workers=max_workers)
    return filter_resources(extractor.extract_files(files), config)
