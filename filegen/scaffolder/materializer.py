"""Reproduce a template tree on disk.

Directories are created idempotently.  Files are written atomically: an
existing file is first copied to ``<path>.backup-<unixMillis>``, the new
content goes to ``<path>.tmp``, and ``os.replace`` moves it onto the
destination.  The rename is the commit point, so the destination only ever
holds the old content or the complete new content.

The first failure aborts the run with :class:`FileCreationError`.  Files
committed before the failure stay in place.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape

from filegen.errors import FileCreationError
from filegen.scaffolder.tree import DirectoryNode, FileNode
from filegen.utils import console


@dataclass
class MaterializeResult:
    """What a materialization touched, in the order it happened."""

    root: Path
    directories: list[Path] = field(default_factory=list)
    files: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def backup_path_for(path: Path, millis: int) -> Path:
    """Return the first free ``<path>.backup-<millis>`` sibling."""
    candidate = path.with_name(f"{path.name}.backup-{millis}")
    while candidate.exists():
        millis += 1
        candidate = path.with_name(f"{path.name}.backup-{millis}")
    return candidate


def write_file_atomic(path: str | Path, content: str = "") -> Path | None:
    """Write *content* to *path* atomically, backing up an existing file.

    Returns:
        The backup path if a previous file was preserved, else ``None``.

    Raises:
        FileCreationError: If any step fails.  The destination is untouched
            unless the final rename already happened.
    """
    target = Path(path)
    tmp = target.with_name(f"{target.name}.tmp")
    backup: Path | None = None
    try:
        if target.exists():
            backup = backup_path_for(target, _now_millis())
            shutil.copy2(target, backup)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, target)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        raise FileCreationError(
            f"Failed to create file: {target}",
            details={"path": str(target), "error": str(exc)},
        ) from exc
    return backup


def ensure_directory(path: str | Path) -> Path:
    """Create *path* and its parents if missing.

    Raises:
        FileCreationError: If the directory cannot be created.
    """
    directory = Path(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileCreationError(
            f"Failed to create directory: {directory}",
            details={"path": str(directory), "error": str(exc)},
        ) from exc
    return directory


class Materializer:
    """Writes :class:`DirectoryNode` trees under a destination root."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet

    async def materialize(self, tree: DirectoryNode, root: str | Path) -> MaterializeResult:
        """Reproduce *tree* under *root*.

        Raises:
            FileCreationError: On the first directory or file that fails.
        """
        destination = Path(root)
        result = MaterializeResult(root=destination)
        await asyncio.to_thread(ensure_directory, destination)
        await self._process(tree, destination, result)
        return result

    async def write_file(self, path: str | Path, content: str) -> Path | None:
        """Atomically write a single file outside of a tree."""
        target = Path(path)
        backup = await asyncio.to_thread(write_file_atomic, target, content)
        self._report_file(target, backup)
        return backup

    async def _process(
        self, node: DirectoryNode, current: Path, result: MaterializeResult
    ) -> None:
        for name, child in node.children.items():
            full_path = current / name
            if isinstance(child, DirectoryNode):
                await asyncio.to_thread(ensure_directory, full_path)
                result.directories.append(full_path)
                if not self.quiet:
                    console.print(f"[green]Created directory:[/green] {escape(str(full_path))}")
                await self._process(child, full_path, result)
            elif isinstance(child, FileNode):
                backup = await asyncio.to_thread(write_file_atomic, full_path, child.content)
                result.files.append(full_path)
                if backup is not None:
                    result.backups.append(backup)
                self._report_file(full_path, backup)

    def _report_file(self, path: Path, backup: Path | None) -> None:
        if self.quiet:
            return
        if backup is not None:
            console.print(f"[yellow]Created backup:[/yellow] {escape(str(backup))}")
        console.print(f"[blue]Created file:[/blue] {escape(str(path))}")
