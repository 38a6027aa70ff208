"""The scaffold run, stage by stage.

:class:`ScaffoldOrchestrator` takes a :class:`ScaffoldRequest` (what the user
asked for on the command line) and drives one run:

1. **Resolve inputs**: flags win over the config file, the config file wins
   over interactive prompts.  The template name is validated here, before
   anything touches the disk.
2. **Install toolchain**: create the base Next.js project.
3. **Apply template**: remove the generated ``src/`` and overlay the
   template tree.
4. **Install plugins** (optional).
5. **Configure CI** (optional).
6. **Persist config**: write ``.filegenrc.json``.

Each step finishes before the next begins.  The first failure moves the run
to ``FAILED`` and is raised as a :class:`StageError` naming the stage; steps
already completed are not rolled back.
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.markup import escape

from filegen.config import DEFAULT_FEATURES, RunConfiguration, Settings
from filegen.errors import ConfigError, FileCreationError, StageError
from filegen.prompts import PrompterProtocol
from filegen.scaffolder.catalog import FEATURES, Choice, TemplateCatalog
from filegen.scaffolder.ci import CIGenerator
from filegen.scaffolder.materializer import MaterializeResult, Materializer
from filegen.toolchain import PACKAGE_MANAGERS, Toolchain
from filegen.utils import console, print_header, print_step, print_success, print_warning


class Stage(str, Enum):
    IDLE = "idle"
    RESOLVING_INPUTS = "resolving_inputs"
    INSTALLING_TOOLCHAIN = "installing_toolchain"
    APPLYING_TEMPLATE = "applying_template"
    INSTALLING_PLUGINS = "installing_plugins"
    CONFIGURING_CI = "configuring_ci"
    PERSISTING_CONFIG = "persisting_config"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ScaffoldRequest:
    """Raw user input.  ``None`` means "not given, look elsewhere"."""

    template: str | None = None
    features: list[str] | None = None
    plugins: list[str] | None = None
    config_path: Path | None = None
    ci: str | None = None
    package_manager: str | None = None
    target: Path = field(default_factory=Path.cwd)


@dataclass
class ResolvedInputs:
    template: str
    features: list[str]
    plugins: list[str]
    package_manager: str
    target: Path
    ci: str | None = None


@dataclass
class ScaffoldResult:
    """Everything a finished run produced."""

    inputs: ResolvedInputs
    project_path: Path
    is_new_directory: bool = False
    materialized: MaterializeResult | None = None
    installed_plugins: list[str] = field(default_factory=list)
    failed_plugins: list[str] = field(default_factory=list)
    ci_files: list[Path] = field(default_factory=list)
    config_path: Path | None = None
    start_command: str = ""


class ScaffoldOrchestrator:
    """Runs scaffolds with injected toolchain, catalog, CI generator and prompter."""

    def __init__(
        self,
        toolchain: Toolchain,
        catalog: TemplateCatalog,
        ci_generator: CIGenerator,
        prompter: PrompterProtocol,
        materializer: Materializer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.toolchain = toolchain
        self.catalog = catalog
        self.ci_generator = ci_generator
        self.prompter = prompter
        self.materializer = materializer or Materializer()
        self.settings = settings or Settings()
        self.stage = Stage.IDLE
        self.history: list[Stage] = [Stage.IDLE]

    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------

    def _enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)

    def _fail(self, exc: Exception) -> StageError:
        if isinstance(exc, StageError):
            return exc
        failed_in = self.stage
        self._enter(Stage.FAILED)
        return StageError(failed_in.value, exc)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def resolve_inputs(self, request: ScaffoldRequest) -> ResolvedInputs:
        """Merge flags, the config file and prompts into concrete inputs.

        Raises:
            StageError: Wrapping ``TemplateNotFoundError`` for an unknown
                template, or ``ConfigError`` for an unreadable config file or
                unknown package manager / CI provider.
        """
        self._enter(Stage.RESOLVING_INPUTS)
        try:
            return self._resolve(request)
        except Exception as exc:
            raise self._fail(exc) from exc

    def _resolve(self, request: ScaffoldRequest) -> ResolvedInputs:
        config: RunConfiguration | None = None
        if request.config_path is not None:
            if request.config_path.exists():
                config = RunConfiguration.load(request.config_path)
                print_step(f"Using configuration from: {escape(str(request.config_path))}")
            else:
                print_warning(f"Config file not found: {request.config_path}")

        template = request.template or (config.template if config else None)
        if not template:
            choices = [
                Choice(info.name, info.label) for info in self.catalog.templates()
            ]
            template = self.prompter.select("Select a template to generate:", choices)
        self.catalog.validate(template)

        if request.features is not None:
            features = request.features
        elif config is not None and "features" in config.model_fields_set:
            features = config.features
        else:
            features = self.prompter.checkbox(
                "Select features to include:", FEATURES, list(DEFAULT_FEATURES)
            )

        if request.plugins is not None:
            plugins = request.plugins
        elif config is not None:
            plugins = config.plugins
        else:
            plugins = []

        if request.ci is not None:
            self.ci_generator.validate(request.ci)

        package_manager = request.package_manager or self.prompter.select(
            "Choose a package manager to use:",
            [Choice(pm, pm) for pm in PACKAGE_MANAGERS],
            default="npx",
        )
        if package_manager not in PACKAGE_MANAGERS:
            raise ConfigError(
                f"Unknown package manager: {package_manager}. "
                f"Choose one of: {', '.join(PACKAGE_MANAGERS)}",
                details={"package_manager": package_manager},
            )

        # RunConfiguration normalises features and plugins to ordered sets.
        normalised = RunConfiguration(template=template, features=features, plugins=plugins)
        return ResolvedInputs(
            template=template,
            features=normalised.features,
            plugins=normalised.plugins,
            package_manager=package_manager,
            target=Path(request.target),
            ci=request.ci,
        )

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(self, request: ScaffoldRequest | ResolvedInputs) -> ScaffoldResult:
        """Scaffold a project.

        Accepts a raw request, or inputs already returned by
        :meth:`resolve_inputs` (the CLI resolves first so it can validate
        before checking dependencies).

        Raises:
            StageError: On the first failing stage.
        """
        inputs = request if isinstance(request, ResolvedInputs) else self.resolve_inputs(request)
        try:
            return await self._run(inputs)
        except Exception as exc:
            raise self._fail(exc) from exc

    async def _run(self, inputs: ResolvedInputs) -> ScaffoldResult:
        self._enter(Stage.INSTALLING_TOOLCHAIN)
        print_header(f"Creating {inputs.template} project")
        base = await self.toolchain.install_base_project(
            inputs.target,
            inputs.package_manager,
            self.catalog.extra_packages(inputs.template),
        )
        result = ScaffoldResult(
            inputs=inputs,
            project_path=base.project_path,
            is_new_directory=base.is_new_directory,
        )

        self._enter(Stage.APPLYING_TEMPLATE)
        result.materialized = await self.apply_template(
            inputs.template, result.project_path, replace_src=True
        )

        if inputs.plugins:
            self._enter(Stage.INSTALLING_PLUGINS)
            print_step(f"Installing plugins: {', '.join(inputs.plugins)}...")
            for plugin in inputs.plugins:
                if await self.toolchain.install_plugin(plugin, result.project_path):
                    result.installed_plugins.append(plugin)
                else:
                    result.failed_plugins.append(plugin)

        if inputs.ci:
            self._enter(Stage.CONFIGURING_CI)
            print_step(f"Configuring CI/CD with {inputs.ci}...")
            result.ci_files = await self.ci_generator.generate(inputs.ci, result.project_path)

        self._enter(Stage.PERSISTING_CONFIG)
        result.config_path = self.save_config(
            result.project_path, inputs.template, inputs.features, inputs.plugins
        )

        result.start_command = self.toolchain.start_command(inputs.package_manager)
        self._enter(Stage.DONE)
        return result

    # ------------------------------------------------------------------
    # Building blocks shared with update/init
    # ------------------------------------------------------------------

    async def apply_template(
        self, template: str, project_path: Path, replace_src: bool = False
    ) -> MaterializeResult:
        """Overlay *template* onto *project_path*.

        With *replace_src*, the existing ``src/`` directory is removed first.
        Without it, files that already exist are backed up and replaced.
        """
        tree = self.catalog.get(template)
        if replace_src:
            src = project_path / "src"
            if src.exists():
                try:
                    await asyncio.to_thread(shutil.rmtree, src)
                except OSError as exc:
                    raise FileCreationError(
                        f"Failed to remove {src}",
                        details={"path": str(src), "error": str(exc)},
                    ) from exc
                print_warning(f"Removed existing src directory in {project_path}.")
        result = await self.materializer.materialize(tree, project_path)
        print_success(f"Applied template {template} to {project_path}")
        return result

    def save_config(
        self,
        project_path: Path,
        template: str | None,
        features: list[str],
        plugins: list[str],
    ) -> Path:
        config = RunConfiguration(
            template=template,
            features=features,
            plugins=plugins,
            version=self.settings.version,
        )
        path = config.save(project_path / self.settings.config_file_name)
        console.print(f"[green]Configuration saved to {escape(str(path))}[/green]")
        return path

    async def update(self, project_dir: Path, template: str | None = None) -> ScaffoldResult:
        """Re-apply the project's template, or switch to *template*.

        Files the template provides are backed up before being replaced, so
        local edits are never lost.  The config file is rewritten.

        Raises:
            StageError: If there is no config and no *template*, if the
                template is unknown, or if writing fails.
        """
        project_dir = Path(project_dir)
        config_path = project_dir / self.settings.config_file_name
        self._enter(Stage.RESOLVING_INPUTS)
        try:
            config = (
                RunConfiguration.load(config_path) if config_path.exists() else RunConfiguration()
            )
            name = template or config.template
            if not name:
                raise ConfigError(
                    f"No template recorded in {config_path}; pass --template",
                    details={"path": str(config_path)},
                )
            self.catalog.validate(name)
            inputs = ResolvedInputs(
                template=name,
                features=config.features,
                plugins=config.plugins,
                package_manager="npx",
                target=project_dir,
            )

            self._enter(Stage.APPLYING_TEMPLATE)
            result = ScaffoldResult(inputs=inputs, project_path=project_dir)
            result.materialized = await self.apply_template(name, project_dir)

            self._enter(Stage.PERSISTING_CONFIG)
            result.config_path = self.save_config(
                project_dir, name, config.features, config.plugins
            )
        except Exception as exc:
            raise self._fail(exc) from exc
        self._enter(Stage.DONE)
        return result

    def init_config(self, config_path: Path, template: str | None = None) -> RunConfiguration:
        """Load or create a config file, optionally recording *template*."""
        if template is not None:
            self.catalog.validate(template)
        config = RunConfiguration.load_or_create(config_path)
        if template is not None:
            config.template = template
            config.save(config_path)
        return config
