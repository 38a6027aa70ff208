"""Dependency auditing against the npm registry.

Reads the ``dependencies`` and ``devDependencies`` of a project's
``package.json``, asks the registry for each package's latest published
version and deprecation notice, and reports which packages are outdated
(with the kind of bump: major, minor, patch...) and which are deprecated.

A failure for one package is reported and skipped; the audit carries on with
the rest.  The finished report is cached for the cache's TTL, so repeated
checks in one session reuse it unless ``force`` is set.

Typical usage::

    auditor = DependencyAuditor(RegistryClient(), TTLCache(3600))
    report = await auditor.audit(Path("."))
    print(report.outdated_count, report.deprecated_count)
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, Field
from rich.markup import escape
from rich.table import Table

from filegen.cache import TTLCache
from filegen.errors import MANIFEST_NOT_FOUND, CommandFailedError, FileGenError
from filegen.prompts import PrompterProtocol
from filegen.runner import CommandRunner
from filegen.utils import (
    console,
    create_progress,
    load_json,
    print_error,
    print_step,
    print_success,
    print_warning,
)

CACHE_KEY = "dependencies_check"

FIX_COMMANDS: list[str] = ["npx npm-check-updates -u", "npm install"]


# ---------------------------------------------------------------------------
# Semantic versions
# ---------------------------------------------------------------------------

_SEMVER = re.compile(
    r"^v?(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_RANGE_PREFIX = re.compile(r"^(?:\^|~|>=|=|v|\s)+")


@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def sort_key(self) -> tuple:
        # A release sorts after any of its prereleases; numeric identifiers
        # sort before alphanumeric ones.
        if not self.prerelease:
            return (*self.core, 1, ())
        ids = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.prerelease)
        return (*self.core, 0, ids)

    def __lt__(self, other: "Version") -> bool:
        return self.sort_key() < other.sort_key()

    def __gt__(self, other: "Version") -> bool:
        return self.sort_key() > other.sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        return f"{text}-{'.'.join(self.prerelease)}" if self.prerelease else text


def clean_version(declared: str) -> str:
    """Strip range operators: ``"^1.2.0" -> "1.2.0"``, ``">=2.0.0" -> "2.0.0"``."""
    return _RANGE_PREFIX.sub("", declared.strip())


def parse_version(text: str) -> Version:
    """Parse ``MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]``.

    Raises:
        ValueError: If *text* is not a plain semantic version (ranges such as
            ``1.x`` or ``*`` and dist-tags such as ``latest`` are rejected).
    """
    match = _SEMVER.match(text.strip())
    if not match:
        raise ValueError(f"Not a semantic version: {text!r}")
    major, minor, patch, pre = match.groups()
    return Version(int(major), int(minor), int(patch), tuple(pre.split(".")) if pre else ())


def bump_kind(current: Version, latest: Version) -> str | None:
    """Name the difference between two versions, or ``None`` if equal.

    Returns one of ``major``, ``minor``, ``patch``, ``premajor``,
    ``preminor``, ``prepatch`` or ``prerelease``.
    """
    if current.sort_key() == latest.sort_key():
        return None
    high, low = (latest, current) if latest > current else (current, latest)

    # 1.0.0-rc.1 -> 1.0.0 is the major release it was a prerelease of.
    if low.prerelease and not high.prerelease and low.core == high.core:
        if low.minor == 0 and low.patch == 0:
            return "major"
        if low.patch == 0:
            return "minor"
        return "patch"

    prefix = "pre" if high.prerelease else ""
    if high.major != low.major:
        return f"{prefix}major"
    if high.minor != low.minor:
        return f"{prefix}minor"
    if high.patch != low.patch:
        return f"{prefix}patch"
    return "prerelease"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class PackageInfo(BaseModel):
    """What the registry says about one package."""

    name: str
    latest: str
    deprecated: str | None = None


class DependencyRecord(BaseModel):
    """One declared dependency joined with its registry metadata."""

    name: str
    declared_range: str
    clean_version: str
    latest_version: str | None = None
    is_deprecated: bool = False
    deprecation_message: str | None = None


class DependencyUpdate(BaseModel):
    name: str
    current: str
    latest: str
    bump: str


class Deprecation(BaseModel):
    name: str
    current: str
    message: str


class DependencyReport(BaseModel):
    """Result of one audit."""

    total: int = 0
    records: list[DependencyRecord] = Field(default_factory=list)
    outdated: list[DependencyUpdate] = Field(default_factory=list)
    deprecated: list[Deprecation] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    last_checked: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def outdated_count(self) -> int:
        return len(self.outdated)

    @property
    def deprecated_count(self) -> int:
        return len(self.deprecated)

    @property
    def needs_attention(self) -> bool:
        return bool(self.outdated or self.deprecated)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def read_manifest(project_dir: str | Path) -> dict[str, str]:
    """Return ``dependencies`` merged with ``devDependencies``.

    Raises:
        FileGenError: ``MANIFEST_NOT_FOUND`` if ``package.json`` is missing or
            unreadable.
    """
    manifest = Path(project_dir) / "package.json"
    try:
        data = load_json(manifest)
    except (OSError, json.JSONDecodeError) as exc:
        raise FileGenError(
            f"Could not read {manifest}",
            code=MANIFEST_NOT_FOUND,
            details={"path": str(manifest), "error": str(exc)},
        ) from exc
    return {**(data.get("dependencies") or {}), **(data.get("devDependencies") or {})}


# ---------------------------------------------------------------------------
# Registry client
# ---------------------------------------------------------------------------


class RegistryClient:
    """Async client for the npm registry's package documents.

    Use as an async context manager to share one connection pool across many
    lookups; outside of one, each lookup opens its own client.
    """

    def __init__(
        self,
        base_url: str = "https://registry.npmjs.org",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    async def __aenter__(self) -> "RegistryClient":
        self._http = self._client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    @staticmethod
    def _package_path(name: str) -> str:
        # Scoped names keep their "@" but the slash must be encoded.
        return "/" + name.replace("/", "%2F")

    async def package_info(self, name: str) -> PackageInfo:
        """Fetch the latest version of *name* and its deprecation notice.

        Raises:
            httpx.HTTPError: On transport errors or a non-2xx response.
            ValueError: If the document has no ``latest`` dist-tag.
        """
        if self._http is not None:
            return await self._fetch(self._http, name)
        async with self._client() as client:
            return await self._fetch(client, name)

    async def _fetch(self, client: httpx.AsyncClient, name: str) -> PackageInfo:
        response = await client.get(self._package_path(name))
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected registry document for {name}")
        dist_tags = data.get("dist-tags")
        latest = dist_tags.get("latest") if isinstance(dist_tags, dict) else None
        if not latest or not isinstance(latest, str):
            raise ValueError(f"No latest version published for {name}")
        versions = data.get("versions")
        version_doc = versions.get(latest) if isinstance(versions, dict) else None
        if not isinstance(version_doc, dict):
            version_doc = {}
        deprecated = version_doc.get("deprecated") or data.get("deprecated")
        return PackageInfo(name=name, latest=latest, deprecated=deprecated or None)


# ---------------------------------------------------------------------------
# Auditor
# ---------------------------------------------------------------------------


class DependencyAuditor:
    """Classifies a project's dependencies as current, outdated or deprecated."""

    def __init__(
        self,
        registry: RegistryClient,
        cache: TTLCache,
        runner: CommandRunner | None = None,
        prompter: PrompterProtocol | None = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.runner = runner
        self.prompter = prompter

    async def audit(
        self,
        project_dir: str | Path = ".",
        *,
        force: bool = False,
        fix: bool = False,
        show: bool = True,
    ) -> DependencyReport:
        """Check every dependency and optionally offer to update them.

        Raises:
            FileGenError: ``MANIFEST_NOT_FOUND`` when there is no manifest.
        """
        cached = None if force else self.cache.get(CACHE_KEY)
        if cached is not None:
            print_step("Using cached dependency information...")
            report = cached
        else:
            report = await self.check(project_dir)
            self.cache.set(CACHE_KEY, report)
            if show:
                render_report(report)

        if fix and report.needs_attention:
            await self.fix(project_dir)
        return report

    async def check(self, project_dir: str | Path = ".") -> DependencyReport:
        """Query the registry for every declared dependency, bypassing the cache."""
        dependencies = read_manifest(project_dir)
        report = DependencyReport(total=len(dependencies))

        with create_progress() as progress:
            task = progress.add_task("Checking dependencies...", total=len(dependencies))
            async with self.registry:
                for name, declared in dependencies.items():
                    try:
                        record = await self._inspect(name, str(declared))
                    except (httpx.HTTPError, ValueError) as exc:
                        print_warning(f"Could not check {name}: {exc}")
                        report.failed.append(name)
                    else:
                        self._classify(record, report)
                    progress.advance(task)

        print_success("Dependency check complete!")
        return report

    async def _inspect(self, name: str, declared: str) -> DependencyRecord:
        current = clean_version(declared)
        parse_version(current)
        info = await self.registry.package_info(name)
        # Checked here so an odd dist-tag fails this package only.
        parse_version(info.latest)
        return DependencyRecord(
            name=name,
            declared_range=declared,
            clean_version=current,
            latest_version=info.latest,
            is_deprecated=info.deprecated is not None,
            deprecation_message=info.deprecated,
        )

    @staticmethod
    def _classify(record: DependencyRecord, report: DependencyReport) -> None:
        report.records.append(record)
        if record.is_deprecated:
            report.deprecated.append(
                Deprecation(
                    name=record.name,
                    current=record.clean_version,
                    message=record.deprecation_message or "",
                )
            )
        if record.latest_version is None:
            return
        current = parse_version(record.clean_version)
        latest = parse_version(record.latest_version)
        if latest > current:
            report.outdated.append(
                DependencyUpdate(
                    name=record.name,
                    current=record.clean_version,
                    latest=record.latest_version,
                    bump=bump_kind(current, latest) or "patch",
                )
            )

    async def fix(self, project_dir: str | Path = ".") -> bool:
        """Confirm, then upgrade every dependency and reinstall.

        Failures are printed, never raised.  Returns ``True`` only when the
        update ran and succeeded.
        """
        if self.runner is None:
            print_warning("No command runner configured; cannot update dependencies.")
            return False
        if self.prompter is not None and not self.prompter.confirm(
            "Do you want to update the outdated dependencies?", default=True
        ):
            return False

        try:
            with create_progress() as progress:
                progress.add_task("Updating dependencies...", total=None)
                for command in FIX_COMMANDS:
                    await self.runner.run(command, cwd=project_dir)
        except CommandFailedError as exc:
            print_error("Failed to update dependencies")
            console.print(f"[red]{escape(exc.message)}[/red]")
            return False

        self.cache.invalidate(CACHE_KEY)
        print_success("Dependencies updated successfully!")
        return True


# ---------------------------------------------------------------------------
# Report rendering
# ---------------------------------------------------------------------------

_BUMP_STYLES = {"major": "red", "minor": "yellow", "patch": "green"}


def render_report(report: DependencyReport) -> None:
    """Print the audit summary, deprecated packages and available updates."""
    console.print()
    console.print("[bold cyan]Dependency Analysis Results[/bold cyan]")
    console.print(f"[bold]Total dependencies: {report.total}[/bold]")
    console.print(f"[bold yellow]Outdated packages: {report.outdated_count}[/bold yellow]")
    console.print(f"[bold red]Deprecated packages: {report.deprecated_count}[/bold red]")
    if report.failed:
        console.print(f"[dim]Not checked: {', '.join(report.failed)}[/dim]")

    if report.deprecated:
        console.print("\n[bold red]Deprecated Packages:[/bold red]")
        for dep in report.deprecated:
            console.print(f"- {escape(dep.name)}@{dep.current}")
            console.print(f"  Message: {escape(dep.message)}")

    if report.outdated:
        table = Table(title="Available Updates", show_header=True, header_style="bold cyan")
        table.add_column("Package", no_wrap=True)
        table.add_column("Current")
        table.add_column("Latest")
        table.add_column("Update")
        for update in report.outdated:
            style = _BUMP_STYLES.get(update.bump, "magenta")
            table.add_row(
                escape(update.name),
                update.current,
                update.latest,
                f"[{style}]{update.bump}[/{style}]",
            )
        console.print()
        console.print(table)
    console.print()
