"""Toolchain providers: the only place filegen starts package managers.

A :class:`Toolchain` creates the base framework project and installs npm
packages into it.  :class:`NextToolchain` does this for Next.js through
``create-next-app`` and ``npm``, with every command going through the
:class:`~filegen.runner.CommandRunner`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from rich.markup import escape

from filegen.config import Settings
from filegen.errors import CommandFailedError
from filegen.runner import CommandResult, CommandRunner
from filegen.scaffolder.materializer import ensure_directory
from filegen.utils import console, create_progress, print_error, print_success, quote_path

# ---------------------------------------------------------------------------
# Package managers
# ---------------------------------------------------------------------------

PACKAGE_MANAGERS: list[str] = ["bunx", "npx", "yarn", "pnpm"]

CREATE_COMMANDS: dict[str, str] = {
    "bunx": "bunx create-next-app@latest",
    "npx": "npx create-next-app@latest",
    "yarn": "yarn create next-app",
    "pnpm": "pnpm create next-app",
}

START_COMMANDS: dict[str, str] = {
    "bunx": "bun run dev",
    "npx": "npm run dev",
    "yarn": "yarn dev",
    "pnpm": "pnpm dev",
}

CREATE_FLAGS = "--typescript --tailwind --eslint"


@dataclass
class BaseProjectResult:
    """Where the base project ended up and how it was created."""

    project_path: Path
    package_manager: str
    is_new_directory: bool = False
    commands: list[str] = field(default_factory=list)


class Toolchain(Protocol):
    """What the orchestrator needs from a framework toolchain."""

    async def install_base_project(
        self,
        project_path: Path,
        package_manager: str,
        extra_packages: list[str] | None = None,
    ) -> BaseProjectResult: ...

    async def install_packages(
        self, names: list[str], dev: bool = False, cwd: Path | None = None
    ) -> CommandResult | None: ...

    async def install_plugin(self, name: str, cwd: Path) -> bool: ...

    def start_command(self, package_manager: str) -> str: ...


def _is_non_empty_dir(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


class NextToolchain:
    """Next.js + Tailwind CSS via ``create-next-app`` and npm."""

    def __init__(self, runner: CommandRunner, settings: Settings | None = None) -> None:
        self.runner = runner
        self.settings = settings or Settings()

    # -- Base project -------------------------------------------------------

    def create_command(self, project_path: Path, package_manager: str) -> str:
        if package_manager not in CREATE_COMMANDS:
            raise ValueError(
                f"Unknown package manager: {package_manager}. "
                f"Choose one of: {', '.join(PACKAGE_MANAGERS)}"
            )
        return f"{CREATE_COMMANDS[package_manager]} {quote_path(project_path)} {CREATE_FLAGS}"

    async def install_base_project(
        self,
        project_path: Path,
        package_manager: str,
        extra_packages: list[str] | None = None,
    ) -> BaseProjectResult:
        """Create a Next.js project at *project_path*.

        A directory that already has content is left alone and the project
        goes to ``<project_path>-<unixMillis>`` instead.

        Raises:
            CommandFailedError: If ``create-next-app`` or the extra package
                install exhausts its retries.
        """
        path = Path(project_path)
        is_new_directory = False
        if _is_non_empty_dir(path):
            path = path.with_name(f"{path.name}-{time.time_ns() // 1_000_000}")
            is_new_directory = True
            console.print(
                f"[yellow]Directory is not empty. Creating the project in "
                f"{escape(str(path))}[/yellow]"
            )
        ensure_directory(path)

        command = self.create_command(path, package_manager)
        result = BaseProjectResult(path, package_manager, is_new_directory)
        with create_progress() as progress:
            progress.add_task("Installing Next.js and Tailwind CSS...", total=None)
            await self.runner.run(command, timeout=self.settings.install_timeout)
        result.commands.append(command)
        print_success("Next.js and Tailwind CSS installed!")

        if extra_packages:
            installed = await self.install_packages(extra_packages, cwd=path)
            if installed is not None:
                result.commands.append(installed.command)
        return result

    # -- Packages -----------------------------------------------------------

    async def install_packages(
        self, names: list[str], dev: bool = False, cwd: Path | None = None
    ) -> CommandResult | None:
        """``npm install [--save-dev] <names>``; no-op for an empty list."""
        if not names:
            return None
        flag = " --save-dev" if dev else ""
        command = f"npm install{flag} {' '.join(names)}"
        with create_progress() as progress:
            progress.add_task(f"Installing {', '.join(names)}...", total=None)
            result = await self.runner.run(
                command, cwd=cwd, timeout=self.settings.install_timeout
            )
        print_success(f"Installed {', '.join(names)}")
        return result

    def plugin_package(self, name: str) -> str:
        return f"{self.settings.plugin_scope}{name}"

    async def install_plugin(self, name: str, cwd: Path) -> bool:
        """Install one filegen plugin into the project at *cwd*.

        The package is looked up in the registry first so a misspelt plugin
        fails fast.  Failures are reported and return ``False``; they never
        raise, so one bad plugin does not stop the others.
        """
        package = self.plugin_package(name)
        try:
            with create_progress() as progress:
                progress.add_task(f"Installing plugin: {name}...", total=None)
                await self.runner.run(f"npm view {package} --json", quiet=True)
                await self.runner.run(
                    f"npm install {package} --save",
                    cwd=cwd,
                    timeout=self.settings.install_timeout,
                )
        except CommandFailedError as exc:
            print_error(f"Failed to install plugin: {name}")
            console.print(f"[red]{escape(str(exc))}[/red]")
            return False
        print_success(f"Plugin '{name}' installed successfully!")
        return True

    def start_command(self, package_manager: str) -> str:
        return START_COMMANDS.get(package_manager, "npm run dev")
