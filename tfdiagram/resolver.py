"""
Module Dependency Resolver

Finds every Terraform file that has to be parsed to see all resources
reachable from a root file: its sibling files plus, transitively, the files
of every local module they call.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Set, Union

import hcl2
from lark.exceptions import LarkError

logger = logging.getLogger(__name__)

TF_SUFFIX = ".tf"
ENTRY_FILE = "main.tf"

MODULE_PATTERN = re.compile(r'module\s+"([^"]+)"\s*\{([^{}]*(?:\{[^{}]*\}[^{}]*)*)\}', re.DOTALL)
SOURCE_PATTERN = re.compile(r'source\s*=\s*"([^"]+)"')


@dataclass
class ModuleReference:
    """A module call: its name and its ``source`` string."""

    name: str
    source: str


@dataclass
class FileNode:
    """A file in the diagnostic dependency tree."""

    path: str
    name: str
    relative_path: Optional[str] = None
    is_module: bool = False
    module_name: Optional[str] = None
    module_source: Optional[str] = None
    dependencies: List["FileNode"] = field(default_factory=list)

    @property
    def display_path(self) -> str:
        return self.relative_path or self.path


def _canonical(path: Union[str, Path]) -> Path:
    return Path(path).resolve()


def terraform_files(directory: Path) -> List[Path]:
    """``.tf`` files in a directory, the conventional entry file first."""
    try:
        files = sorted(p for p in directory.iterdir() if p.suffix == TF_SUFFIX and p.is_file())
    except OSError as e:
        logger.warning("Could not read directory %s: %s", directory, e)
        return []
    files.sort(key=lambda p: p.name != ENTRY_FILE)
    return files


def _source_value(config: Any) -> Optional[str]:
    if isinstance(config, list):
        config = config[0] if config else {}
    if not isinstance(config, dict):
        return None
    source = config.get("source")
    if isinstance(source, str):
        return source.strip('"')
    return None


def extract_module_references(content: str, source_file: str = "") -> List[ModuleReference]:
    """Module calls declared in a file's content.

    Uses the HCL2 parser, or a regex scan if the content does not parse.
    """
    refs: List[ModuleReference] = []
    try:
        parsed = hcl2.loads(content)
    except (LarkError, ValueError) as e:
        logger.debug("Could not parse HCL in %s, scanning modules with regex: %s", source_file, e)
        for match in MODULE_PATTERN.finditer(content):
            source_match = SOURCE_PATTERN.search(match.group(2))
            if source_match:
                refs.append(ModuleReference(match.group(1), source_match.group(1)))
        return refs

    blocks = parsed.get("module") or []
    if isinstance(blocks, dict):
        blocks = [blocks]
    for block in blocks:
        if not isinstance(block, dict):
            continue
        for module_name, config in block.items():
            source = _source_value(config)
            if source:
                refs.append(ModuleReference(module_name.strip('"'), source))
    return refs


class ModuleDependencyResolver:
    """Resolves module references between Terraform files.

    Remote sources (registry, git, http) cannot be followed and are dropped.
    A visited set keyed by canonical path, shared by every branch of the
    walk, makes cyclic module graphs terminate.
    """

    def is_local_source(self, source: str) -> bool:
        return (
            source.startswith("./")
            or source.startswith("../")
            or os.path.isabs(source)
            or "://" not in source
        )

    def resolve_module_path(self, source: str, base_dir: Path) -> Optional[Path]:
        """Map a module source to a file or directory, or None if unresolvable."""
        if not self.is_local_source(source):
            return None
        # Forced-getter syntax ("git::...") is remote even without a scheme
        if "::" in source:
            return None

        resolved = (base_dir / source).resolve()
        if resolved.is_dir():
            return resolved if terraform_files(resolved) else None
        if resolved.is_file():
            return resolved
        if not resolved.suffix:
            with_ext = resolved.with_name(resolved.name + TF_SUFFIX)
            if with_ext.is_file():
                return with_ext
        return None

    def _module_files(self, module_path: Path) -> List[Path]:
        if module_path.is_dir():
            return terraform_files(module_path)
        return [module_path]

    def _read_references(self, file_path: Path) -> List[ModuleReference]:
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", file_path, e)
            return []
        return extract_module_references(content, str(file_path))

    def resolve(self, root_file: Union[str, Path]) -> Set[Path]:
        """Every file that must be parsed for ``root_file``.

        Raises:
            FileNotFoundError: If ``root_file`` does not exist.
        """
        root = _canonical(root_file)
        if not root.is_file():
            raise FileNotFoundError(f"File not found: {root_file}")

        all_files: Set[Path] = {root}
        all_files.update(terraform_files(root.parent))

        visited: Set[Path] = set()
        for file_path in sorted(all_files):
            self._expand(file_path, all_files, visited)
        return all_files

    def _expand(self, file_path: Path, all_files: Set[Path], visited: Set[Path]) -> None:
        if file_path in visited:
            return
        visited.add(file_path)

        for ref in self._read_references(file_path):
            module_path = self.resolve_module_path(ref.source, file_path.parent)
            if module_path is None:
                logger.debug("Skipping unresolvable module %s (%s)", ref.name, ref.source)
                continue
            for module_file in self._module_files(module_path):
                all_files.add(module_file)
                self._expand(module_file, all_files, visited)

    def build_tree(
        self, root_file: Union[str, Path], workspace: Optional[Union[str, Path]] = None
    ) -> FileNode:
        """Dependency tree of ``root_file`` for diagnostics.

        Siblings hang directly off the root; module files hang off the file
        that calls them. Each file appears once.

        Raises:
            FileNotFoundError: If ``root_file`` does not exist.
        """
        root = _canonical(root_file)
        if not root.is_file():
            raise FileNotFoundError(f"File not found: {root_file}")

        workspace_path = _canonical(workspace) if workspace else None
        root_node = self._node(root, workspace_path)
        visited: Set[Path] = {root}

        siblings = [p for p in terraform_files(root.parent) if p != root]
        for sibling in siblings:
            visited.add(sibling)
            root_node.dependencies.append(self._node(sibling, workspace_path))

        self._expand_tree(root_node, root, visited, workspace_path)
        for node, sibling in zip(root_node.dependencies[: len(siblings)], siblings):
            self._expand_tree(node, sibling, visited, workspace_path)
        return root_node

    def _node(
        self, path: Path, workspace: Optional[Path], ref: Optional[ModuleReference] = None
    ) -> FileNode:
        relative = os.path.relpath(path, workspace) if workspace else None
        return FileNode(
            path=str(path),
            name=path.name,
            relative_path=relative,
            is_module=ref is not None,
            module_name=ref.name if ref else None,
            module_source=ref.source if ref else None,
        )

    def _expand_tree(
        self, parent: FileNode, file_path: Path, visited: Set[Path], workspace: Optional[Path]
    ) -> None:
        for ref in self._read_references(file_path):
            module_path = self.resolve_module_path(ref.source, file_path.parent)
            if module_path is None:
                continue
            for module_file in self._module_files(module_path):
                if module_file in visited:
                    continue
                visited.add(module_file)
                node = self._node(module_file, workspace, ref)
                parent.dependencies.append(node)
                self._expand_tree(node, module_file, visited, workspace)


def format_tree(node: FileNode, indent: str = "", seen: Optional[Set[str]] = None) -> str:
    """Render a FileNode tree as indented text."""
    seen = set(seen or ())
    if node.path in seen:
        return f"{indent}├─ {node.display_path} (circular reference)\n"
    seen.add(node.path)

    if node.is_module:
        line = f"{indent}├─ {node.display_path} (Module: {node.module_name}, Source: {node.module_source})\n"
    elif indent == "":
        line = f"Root File: {node.display_path}\n"
    else:
        line = f"{indent}├─ {node.display_path} (Same Directory)\n"

    if not node.dependencies:
        return line + f"{indent}   └─ No dependencies\n"

    result = line + f"{indent}   └─ Dependencies ({len(node.dependencies)}):\n"
    for i, dependency in enumerate(node.dependencies):
        is_last = i == len(node.dependencies) - 1
        next_indent = indent + ("    " if is_last else "   │")
        result += format_tree(dependency, next_indent, seen)
    return result
