"""Shared pytest fixtures for the filegen test suite.

Provides reusable fixtures for:
- Settings pointed at temporary directories
- A scripted prompter and a fake toolchain (no package managers are run)
- A recording sleep for retry/backoff tests
- An in-memory npm registry served through ``httpx.MockTransport``
- ``package.json`` writers
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from filegen.auditor import RegistryClient
from filegen.config import Settings
from filegen.runner import CommandResult
from filegen.scaffolder.catalog import Choice, TemplateCatalog
from filegen.scaffolder.materializer import Materializer
from filegen.scaffolder.templates import TemplateRenderer
from filegen.toolchain import BaseProjectResult


# ---------------------------------------------------------------------------
# Settings & Directories
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with no backoff and a throwaway user template directory."""
    return Settings(
        backoff_base=0.0,
        templates_dir=tmp_path / "user-templates",
        registry_url="https://registry.test",
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty directory to scaffold into."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def quiet_materializer() -> Materializer:
    return Materializer(quiet=True)


@pytest.fixture
def renderer(quiet_materializer: Materializer) -> TemplateRenderer:
    return TemplateRenderer(materializer=quiet_materializer)


@pytest.fixture
def catalog(settings: Settings) -> TemplateCatalog:
    return TemplateCatalog(user_dir=settings.templates_dir)


@pytest.fixture
def write_package_json():
    """Factory writing a ``package.json`` with the given dependencies."""

    def _write(
        directory: Path,
        dependencies: dict[str, str] | None = None,
        dev_dependencies: dict[str, str] | None = None,
    ) -> Path:
        manifest = directory / "package.json"
        data: dict[str, Any] = {"name": "demo", "version": "0.1.0"}
        if dependencies is not None:
            data["dependencies"] = dependencies
        if dev_dependencies is not None:
            data["devDependencies"] = dev_dependencies
        manifest.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return manifest

    return _write


# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Stands in for ``asyncio.sleep`` and remembers every delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


# ---------------------------------------------------------------------------
# Prompter
# ---------------------------------------------------------------------------


class ScriptedPrompter:
    """Answers prompts from a script and records every question asked.

    ``answers`` maps a substring of the prompt message to the answer.  A
    question with no scripted answer gets its default; a ``select`` with no
    default fails the test.
    """

    def __init__(self, answers: dict[str, Any] | None = None) -> None:
        self.answers = dict(answers or {})
        self.asked: list[str] = []

    def _lookup(self, message: str) -> Any:
        self.asked.append(message)
        for key, value in self.answers.items():
            if key in message:
                return value
        return None

    def select(self, message: str, choices: list[Choice], default: str | None = None) -> str:
        answer = self._lookup(message)
        if answer is None:
            assert default is not None, f"Unexpected prompt: {message}"
            return default
        assert answer in [c.value for c in choices], f"{answer} not offered for {message}"
        return answer

    def checkbox(
        self, message: str, choices: list[Choice], defaults: list[str] | None = None
    ) -> list[str]:
        answer = self._lookup(message)
        return list(defaults or []) if answer is None else list(answer)

    def confirm(self, message: str, default: bool = True) -> bool:
        answer = self._lookup(message)
        return default if answer is None else bool(answer)


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


# ---------------------------------------------------------------------------
# Toolchain
# ---------------------------------------------------------------------------


class FakeToolchain:
    """Records toolchain calls instead of running package managers.

    ``install_base_project`` lays down a minimal create-next-app result
    (``package.json`` and a default ``src/app/page.tsx``) so the template
    overlay has something to replace.
    """

    def __init__(self, failing_plugins: set[str] | None = None, fail_base: Exception | None = None):
        self.failing_plugins = set(failing_plugins or ())
        self.fail_base = fail_base
        self.calls: list[tuple[str, Any]] = []

    async def install_base_project(
        self,
        project_path: Path,
        package_manager: str,
        extra_packages: list[str] | None = None,
    ) -> BaseProjectResult:
        self.calls.append(("base", (Path(project_path), package_manager, list(extra_packages or []))))
        if self.fail_base is not None:
            raise self.fail_base
        path = Path(project_path)
        (path / "src" / "app").mkdir(parents=True, exist_ok=True)
        (path / "src" / "app" / "page.tsx").write_text("// create-next-app default\n", encoding="utf-8")
        (path / "src" / "app" / "favicon.ico").write_text("icon", encoding="utf-8")
        (path / "package.json").write_text('{"name": "app"}', encoding="utf-8")
        return BaseProjectResult(path, package_manager, False, [f"{package_manager} create"])

    async def install_packages(
        self, names: list[str], dev: bool = False, cwd: Path | None = None
    ) -> CommandResult | None:
        self.calls.append(("packages", (list(names), dev, cwd)))
        return CommandResult(command=f"npm install {' '.join(names)}")

    async def install_plugin(self, name: str, cwd: Path) -> bool:
        self.calls.append(("plugin", (name, cwd)))
        return name not in self.failing_plugins

    def start_command(self, package_manager: str) -> str:
        return "npm run dev"

    def called(self, kind: str) -> list[Any]:
        return [args for name, args in self.calls if name == kind]


@pytest.fixture
def fake_toolchain() -> FakeToolchain:
    return FakeToolchain()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def registry_document(latest: str, deprecated: str | None = None) -> dict[str, Any]:
    """A trimmed npm package document."""
    version: dict[str, Any] = {"version": latest}
    if deprecated:
        version["deprecated"] = deprecated
    return {"dist-tags": {"latest": latest}, "versions": {latest: version}}


class FakeRegistry:
    """In-memory npm registry; unknown packages answer 404."""

    def __init__(self, packages: dict[str, dict[str, Any]] | None = None) -> None:
        self.packages = dict(packages or {})
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        name = request.url.path.lstrip("/").replace("%2F", "/").replace("%2f", "/")
        self.requests.append(name)
        if name not in self.packages:
            return httpx.Response(404, json={"error": "Not found"})
        return httpx.Response(200, json=self.packages[name])

    def client(self, settings: Settings) -> RegistryClient:
        return RegistryClient(
            settings.registry_url,
            timeout=settings.registry_timeout,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


# ---------------------------------------------------------------------------
# Factories (for tests that need non-default doubles)
# ---------------------------------------------------------------------------


@pytest.fixture
def make_prompter():
    return ScriptedPrompter


@pytest.fixture
def make_toolchain():
    return FakeToolchain


@pytest.fixture
def registry_doc():
    return registry_document
