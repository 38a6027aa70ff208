"""Template trees.

A template is an immutable tree of :class:`DirectoryNode` and
:class:`FileNode` values.  Trees are built either from a nested mapping
(``dict`` values are directories, ``str`` values are files) or from a
directory on disk.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Union

# Never copied out of an on-disk template.
IGNORED_NAMES = frozenset({".git", "__pycache__", ".DS_Store", "node_modules"})


@dataclass(frozen=True)
class FileNode:
    """A file leaf holding fully resolved text."""

    content: str = ""


@dataclass(frozen=True)
class DirectoryNode:
    """A directory whose children are keyed by a single path component."""

    children: Mapping[str, "Node"] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in self.children:
            _check_component(name)
        object.__setattr__(self, "children", MappingProxyType(dict(self.children)))

    def get(self, path: str) -> "Node | None":
        """Look up a ``/``-separated relative path, or ``None``."""
        node: Node = self
        for part in _split(path):
            if not isinstance(node, DirectoryNode) or part not in node.children:
                return None
            node = node.children[part]
        return node

    def walk(self, prefix: str = "") -> Iterator[tuple[str, "Node"]]:
        """Yield ``(relative_path, node)`` for every descendant, parents first."""
        for name, child in self.children.items():
            rel = f"{prefix}{name}"
            yield rel, child
            if isinstance(child, DirectoryNode):
                yield from child.walk(f"{rel}/")

    def files(self) -> dict[str, str]:
        """Flatten the tree to ``{relative_path: content}``."""
        return {
            rel: node.content for rel, node in self.walk() if isinstance(node, FileNode)
        }

    def directories(self) -> list[str]:
        return [rel for rel, node in self.walk() if isinstance(node, DirectoryNode)]


Node = Union[FileNode, DirectoryNode]


def _split(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _check_component(name: str) -> None:
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid template entry name: {name!r}")


def from_mapping(mapping: Mapping[str, Any]) -> DirectoryNode:
    """Build a tree from a nested mapping.

    Keys may contain ``/`` (``".github/workflows/main.yml"``); they expand into
    nested directories and merge with siblings of the same name.  A trailing
    ``/`` on a key is accepted and ignored.

    Raises:
        ValueError: On a value that is neither a mapping nor a string, on an
            invalid path component, or when a file and a directory collide.
    """
    draft: dict[str, Any] = {}
    _fill(draft, mapping, "")
    return _freeze(draft)


def _fill(draft: dict[str, Any], mapping: Mapping[str, Any], where: str) -> None:
    for key, value in mapping.items():
        parts = _split(key)
        location = f"{where}{key}"
        if not parts:
            raise ValueError(f"Empty template entry name under {where or '/'}")
        if not isinstance(value, (Mapping, str)):
            raise ValueError(
                f"Template entry {location} must be a mapping or a string, "
                f"got {type(value).__name__}"
            )

        parent = draft
        for part in parts[:-1]:
            parent = _subdir(parent, part, location)

        leaf = parts[-1]
        if isinstance(value, str):
            if leaf in parent:
                raise ValueError(f"Conflicting template entries at {location}")
            parent[leaf] = FileNode(value)
        else:
            _fill(_subdir(parent, leaf, location), value, f"{location.rstrip('/')}/")


def _subdir(draft: dict[str, Any], name: str, location: str) -> dict[str, Any]:
    existing = draft.setdefault(name, {})
    if not isinstance(existing, dict):
        raise ValueError(f"Conflicting template entries at {location}")
    return existing


def _freeze(draft: dict[str, Any]) -> DirectoryNode:
    return DirectoryNode(
        {
            name: _freeze(child) if isinstance(child, dict) else child
            for name, child in draft.items()
        }
    )


def from_directory(root: str | Path, ignore: frozenset[str] = IGNORED_NAMES) -> DirectoryNode:
    """Read a directory on disk into a tree.

    Files are decoded as UTF-8.  Entries named in *ignore* are skipped, and so
    are files that are not UTF-8 text (images and other binaries).
    """
    base = Path(root)
    if not base.is_dir():
        raise ValueError(f"Not a directory: {base}")
    children: dict[str, Node] = {}
    for entry in sorted(base.iterdir(), key=lambda p: p.name):
        if entry.name in ignore:
            continue
        if entry.is_dir():
            children[entry.name] = from_directory(entry, ignore)
        elif entry.is_file():
            try:
                children[entry.name] = FileNode(entry.read_text(encoding="utf-8"))
            except UnicodeDecodeError:
                continue
    return DirectoryNode(children)
