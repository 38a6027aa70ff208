"""Project statistics for ``filegen analyze``.

Counts source files by extension, lists the largest ones, measures the
``.next`` build output and, on request, times a production build.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from pathlib import Path

from pydantic import BaseModel, Field
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from filegen.runner import CommandRunner
from filegen.utils import console, create_progress, format_duration, format_size

# Never counted as project source.
SKIPPED_DIRS = frozenset({"node_modules", ".git", ".next", "out", "dist", "coverage"})

BUILD_COMMAND = "npm run build"


class SourceFile(BaseModel):
    path: str
    size: int


class ProjectStats(BaseModel):
    """Snapshot of a project directory."""

    root: str
    total_files: int = 0
    total_bytes: int = 0
    by_extension: dict[str, int] = Field(default_factory=dict)
    largest: list[SourceFile] = Field(default_factory=list)
    bundle_bytes: int | None = None
    build_seconds: float | None = None


def _source_files(root: Path):
    for path in sorted(root.iterdir(), key=lambda p: p.name):
        if path.is_symlink():
            continue
        if path.is_dir():
            if path.name not in SKIPPED_DIRS:
                yield from _source_files(path)
        elif path.is_file():
            yield path


def collect_stats(root: str | Path, top: int = 10) -> ProjectStats:
    """Walk *root* and summarise its source files."""
    base = Path(root)
    counts: Counter[str] = Counter()
    sizes: list[SourceFile] = []
    total = 0
    for path in _source_files(base):
        size = path.stat().st_size
        total += size
        counts[path.suffix or path.name] += 1
        sizes.append(SourceFile(path=path.relative_to(base).as_posix(), size=size))

    sizes.sort(key=lambda f: (-f.size, f.path))
    return ProjectStats(
        root=str(base),
        total_files=len(sizes),
        total_bytes=total,
        by_extension=dict(counts.most_common()),
        largest=sizes[:top],
    )


def bundle_size(root: str | Path) -> int | None:
    """Total size of ``.next/static``, or ``None`` if the project is unbuilt."""
    static = Path(root) / ".next" / "static"
    if not static.is_dir():
        return None
    return sum(p.stat().st_size for p in static.rglob("*") if p.is_file())


async def measure_build(
    runner: CommandRunner, root: str | Path, timeout: float | None = None
) -> float:
    """Run ``npm run build`` once and return the wall-clock seconds.

    Raises:
        CommandFailedError: If the build fails.
    """
    start = time.monotonic()
    with create_progress() as progress:
        progress.add_task("Running production build...", total=None)
        await runner.run(BUILD_COMMAND, cwd=root, timeout=timeout, retries=1)
    return time.monotonic() - start


async def analyze(
    root: str | Path,
    runner: CommandRunner | None = None,
    performance: bool = False,
    include_bundle: bool = False,
    build_timeout: float | None = None,
) -> ProjectStats:
    """Collect statistics, optionally timing a build and sizing its bundle."""
    stats = await asyncio.to_thread(collect_stats, root)
    if performance and runner is not None:
        stats.build_seconds = await measure_build(runner, root, build_timeout)
    if include_bundle or performance:
        stats.bundle_bytes = await asyncio.to_thread(bundle_size, root)
    return stats


def render_stats(stats: ProjectStats) -> None:
    """Pretty-print a :class:`ProjectStats`."""
    lines = [
        f"[bold]Project[/bold]: {escape(stats.root)}",
        f"Files: {stats.total_files}",
        f"Size: {format_size(stats.total_bytes)}",
    ]
    if stats.build_seconds is not None:
        lines.append(f"Build time: {format_duration(stats.build_seconds)}")
    if stats.bundle_bytes is not None:
        lines.append(f"Bundle (.next/static): {format_size(stats.bundle_bytes)}")
    console.print(Panel("\n".join(lines), title="Project Analysis", border_style="cyan"))

    if stats.by_extension:
        table = Table(title="Files by type")
        table.add_column("Extension", style="cyan")
        table.add_column("Files", justify="right")
        for ext, count in stats.by_extension.items():
            table.add_row(escape(ext), str(count))
        console.print(table)

    if stats.largest:
        table = Table(title="Largest files")
        table.add_column("Path")
        table.add_column("Size", justify="right")
        for item in stats.largest:
            table.add_row(escape(item.path), format_size(item.size))
        console.print(table)
    console.print()
