"""Command-line interface.

``filegen`` with no sub-command scaffolds a project; the sub-commands audit
dependencies, generate single files, manage templates and inspect a project.
Every handled error is appended to ``filegen-error.log`` in the working
directory, summarised on the console, and ends the process with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.markup import escape
from rich.table import Table

from filegen import __version__
from filegen.analyzer import analyze, render_stats
from filegen.auditor import DependencyAuditor, RegistryClient
from filegen.cache import TTLCache
from filegen.config import RunConfiguration, Settings
from filegen.errors import (
    COMMAND_FAILED,
    ErrorLog,
    FileGenError,
    StageError,
    TemplateNotFoundError,
)
from filegen.orchestrator import ScaffoldOrchestrator, ScaffoldRequest, ScaffoldResult
from filegen.prompts import Prompter, PrompterProtocol
from filegen.runner import CommandRunner
from filegen.scaffolder.catalog import TemplateCatalog
from filegen.scaffolder.ci import CIGenerator
from filegen.scaffolder.generators import SCHEMA_TYPES, SourceGenerator
from filegen.scaffolder.materializer import Materializer
from filegen.scaffolder.templates import TemplateRenderer
from filegen.toolchain import PACKAGE_MANAGERS, NextToolchain, Toolchain
from filegen.utils import (
    console,
    print_error,
    print_step,
    print_success,
    print_summary_table,
    print_warning,
    split_csv,
)

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """The components one invocation works with.

    Built once per process by :meth:`create`; tests replace individual
    pieces (toolchain, prompter, registry) with doubles.
    """

    settings: Settings
    cwd: Path
    runner: CommandRunner
    cache: TTLCache
    prompter: PrompterProtocol
    toolchain: Toolchain
    catalog: TemplateCatalog
    renderer: TemplateRenderer
    registry: RegistryClient
    error_log: ErrorLog

    @classmethod
    def create(
        cls, settings: Settings | None = None, cwd: Path | None = None, **overrides: Any
    ) -> "Services":
        settings = settings or Settings.from_env()
        cwd = Path(cwd) if cwd is not None else Path.cwd()
        runner = overrides.pop("runner", None) or CommandRunner(
            timeout=settings.command_timeout,
            retries=settings.max_retries,
            backoff_base=settings.backoff_base,
        )
        parts: dict[str, Any] = {
            "runner": runner,
            "cache": TTLCache(settings.cache_ttl),
            "prompter": Prompter(),
            "toolchain": NextToolchain(runner, settings),
            "catalog": TemplateCatalog(user_dir=settings.templates_dir),
            "renderer": TemplateRenderer(materializer=Materializer()),
            "registry": RegistryClient(settings.registry_url, settings.registry_timeout),
            "error_log": ErrorLog(cwd / settings.error_log_name),
        }
        parts.update(overrides)
        return cls(settings=settings, cwd=cwd, **parts)

    def orchestrator(self) -> ScaffoldOrchestrator:
        return ScaffoldOrchestrator(
            toolchain=self.toolchain,
            catalog=self.catalog,
            ci_generator=CIGenerator(self.renderer, self.settings.node_version),
            prompter=self.prompter,
            materializer=self.renderer.materializer,
            settings=self.settings,
        )

    def auditor(self) -> DependencyAuditor:
        return DependencyAuditor(self.registry, self.cache, self.runner, self.prompter)

    def generator(self) -> SourceGenerator:
        return SourceGenerator(self.renderer)

    def resolve(self, path: str | Path) -> Path:
        p = Path(path).expanduser()
        return p if p.is_absolute() else self.cwd / p


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _csv_or_none(value: str | None) -> list[str] | None:
    return None if value is None else split_csv(value)


async def cmd_scaffold(args: argparse.Namespace, services: Services) -> None:
    orchestrator = services.orchestrator()
    request = ScaffoldRequest(
        template=args.template,
        features=_csv_or_none(args.features),
        plugins=_csv_or_none(args.plugins),
        config_path=services.resolve(args.config) if args.config else None,
        ci=args.ci,
        package_manager=args.package_manager,
        target=services.resolve(args.target) if args.target else services.cwd,
    )
    # Validates the template before anything runs or is written.
    inputs = orchestrator.resolve_inputs(request)

    if not args.skip_dep_check:
        try:
            report = await services.auditor().audit(services.cwd)
        except FileGenError as exc:
            print_warning(f"Dependency check skipped: {exc.message}")
        else:
            if report.deprecated:
                print_warning(
                    "Some dependencies are deprecated. Run 'filegen check-deps --fix' to fix them."
                )

    result = await orchestrator.run(inputs)
    _print_scaffold_summary(result)


def _print_scaffold_summary(result: ScaffoldResult) -> None:
    summary: dict[str, Any] = {
        "Template": result.inputs.template,
        "Project": result.project_path,
        "Features": ", ".join(result.inputs.features) or "-",
    }
    if result.materialized is not None:
        summary["Files written"] = len(result.materialized.files)
        if result.materialized.backups:
            summary["Backups"] = len(result.materialized.backups)
    if result.inputs.plugins:
        summary["Plugins"] = ", ".join(result.installed_plugins) or "-"
    if result.failed_plugins:
        summary["Failed plugins"] = ", ".join(result.failed_plugins)
    if result.ci_files:
        summary["CI"] = ", ".join(str(p.relative_to(result.project_path)) for p in result.ci_files)
    if result.config_path is not None:
        summary["Config"] = result.config_path
    print_summary_table(summary, title="Scaffold Summary")

    print_success("Setup completed successfully!")
    if result.is_new_directory:
        print_step(
            f"Project created in {escape(str(result.project_path))}. "
            "Please cd into that directory to start the server."
        )
    if result.start_command:
        print_step(f"Start the development server with: {result.start_command}")


async def cmd_check_deps(args: argparse.Namespace, services: Services) -> None:
    await services.auditor().audit(services.cwd, force=args.force, fix=args.fix)


async def cmd_component(args: argparse.Namespace, services: Services) -> None:
    path = await services.generator().component(
        args.name, split_csv(args.props), target_dir=services.cwd
    )
    print_success(f"Component generated: {path.relative_to(services.cwd)}")


async def cmd_api_routes(args: argparse.Namespace, services: Services) -> None:
    routes = split_csv(args.routes)
    if not routes:
        raise FileGenError("No routes given", details={"routes": args.routes})
    paths = await services.generator().api_routes(routes, target_dir=services.cwd)
    print_success(f"Generated {len(paths)} API route(s)")


async def cmd_db_schema(args: argparse.Namespace, services: Services) -> None:
    output = services.resolve(args.output) if args.output else services.cwd
    paths = await services.generator().db_schema(
        args.type, output, models=split_csv(args.models) or None
    )
    print_success(f"Generated {args.type} schema ({len(paths)} file(s))")


async def cmd_install_plugin(args: argparse.Namespace, services: Services) -> None:
    if not await services.toolchain.install_plugin(args.name, services.cwd):
        raise FileGenError(
            f"Plugin {args.name} was not installed",
            code=COMMAND_FAILED,
            details={"plugin": args.name},
        )
    config_path = services.cwd / services.settings.config_file_name
    if config_path.exists():
        config = RunConfiguration.load(config_path)
        if args.name not in config.plugins:
            config.plugins.append(args.name)
        config.save(config_path)


async def cmd_analyze(args: argparse.Namespace, services: Services) -> None:
    stats = await analyze(
        services.cwd,
        runner=services.runner,
        performance=args.performance,
        include_bundle=args.bundle_size,
        build_timeout=services.settings.install_timeout,
    )
    render_stats(stats)
    if args.bundle_size and stats.bundle_bytes is None:
        print_warning("No .next build output found. Run 'npm run build' first.")


async def cmd_update(args: argparse.Namespace, services: Services) -> None:
    result = await services.orchestrator().update(services.cwd, args.template)
    files = len(result.materialized.files) if result.materialized else 0
    backups = len(result.materialized.backups) if result.materialized else 0
    print_success(
        f"Updated to template {result.inputs.template}: "
        f"{files} file(s) written, {backups} backup(s) made"
    )


async def cmd_import_template(args: argparse.Namespace, services: Services) -> None:
    info = await services.catalog.import_template(
        args.url,
        services.runner,
        name=args.name,
        timeout=services.settings.install_timeout,
    )
    print_step(f"Use it with: filegen --template {info.name}")


async def cmd_init(args: argparse.Namespace, services: Services) -> None:
    path = (
        services.resolve(args.config)
        if args.config
        else services.cwd / services.settings.config_file_name
    )
    config = services.orchestrator().init_config(path, args.template)
    print_summary_table(
        {
            "Config": path,
            "Template": config.template or "-",
            "Features": ", ".join(config.features) or "-",
            "Plugins": ", ".join(config.plugins) or "-",
        },
        title="Configuration",
    )


async def cmd_list_templates(args: argparse.Namespace, services: Services) -> None:
    table = Table(title="Templates", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Source")
    for info in services.catalog.templates():
        table.add_row(info.name, info.label, "built-in" if info.builtin else escape(str(info.path)))
    console.print(table)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

Handler = Callable[[argparse.Namespace, Services], Awaitable[None]]

# Sub-command -> (handler, message recorded with any error it raises)
COMMANDS: dict[str | None, tuple[Handler, str]] = {
    None: (cmd_scaffold, "Error during setup"),
    "check-deps": (cmd_check_deps, "Error checking dependencies"),
    "component": (cmd_component, "Error generating component"),
    "api-routes": (cmd_api_routes, "Error generating API routes"),
    "db-schema": (cmd_db_schema, "Error generating database schema"),
    "install-plugin": (cmd_install_plugin, "Error installing plugin"),
    "analyze": (cmd_analyze, "Error analyzing project"),
    "update": (cmd_update, "Error updating project"),
    "import-template": (cmd_import_template, "Error importing template"),
    "init": (cmd_init, "Error initializing configuration"),
    "list-templates": (cmd_list_templates, "Error listing templates"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filegen",
        description="Generate Next.js projects and files from templates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  filegen --template e-commerce --features seo,i18n --ci github-actions\n"
            "  filegen check-deps --fix\n"
            "  filegen component UserCard --props name,email\n"
            "  filegen db-schema --type prisma --models User,Post\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-t", "--template", help="Template name to generate")
    parser.add_argument("-f", "--features", help="Comma-separated features to include")
    parser.add_argument("-p", "--plugins", help="Comma-separated plugins to include")
    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument("--ci", help="CI/CD provider to configure")
    parser.add_argument(
        "--skip-dep-check",
        action="store_true",
        help="Skip checking for deprecated dependencies",
    )
    parser.add_argument(
        "--package-manager",
        choices=PACKAGE_MANAGERS,
        help="Package manager used to create the project",
    )
    parser.add_argument("--target", help="Directory to create the project in (default: cwd)")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    p = sub.add_parser("check-deps", help="Check for outdated and deprecated dependencies")
    p.add_argument("-f", "--fix", action="store_true", help="Update dependencies automatically")
    p.add_argument("--force", action="store_true", help="Ignore cached results")

    p = sub.add_parser("component", help="Generate a new component")
    p.add_argument("name")
    p.add_argument("-p", "--props", help="Comma-separated list of props")

    p = sub.add_parser("api-routes", help="Generate API routes")
    p.add_argument("routes", help="Comma-separated route names")

    p = sub.add_parser("db-schema", help="Generate a database schema")
    p.add_argument("--type", choices=SCHEMA_TYPES, default="mongodb")
    p.add_argument("-o", "--output", help="Output directory (default: cwd)")
    p.add_argument("-m", "--models", help="Comma-separated model names (default: User)")

    p = sub.add_parser("install-plugin", help="Install a filegen plugin")
    p.add_argument("name")

    p = sub.add_parser("analyze", help="Analyze project files and build output")
    p.add_argument("--performance", action="store_true", help="Time a production build")
    p.add_argument("--bundle-size", action="store_true", help="Report .next bundle size")

    p = sub.add_parser("update", help="Re-apply the project's template")
    p.add_argument("-t", "--template", help="Switch to another template")

    p = sub.add_parser("import-template", help="Import a template from a git repository")
    p.add_argument("url")
    p.add_argument("-n", "--name", help="Template name (default: repository name)")

    p = sub.add_parser("init", help="Create or show the configuration file")
    p.add_argument("-t", "--template", help="Template to record")
    p.add_argument("-c", "--config", help="Path to configuration file")

    sub.add_parser("list-templates", help="List available templates")
    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _report(error: BaseException, message: str, services: Services) -> None:
    services.error_log.record(error, message)
    print_error(f"{message}: {escape(str(error))}")
    if isinstance(error, FileGenError):
        console.print(f"[dim]Code: {error.code}[/dim]")
        for key, value in error.details.items():
            console.print(f"[dim]  {key}: {escape(str(value))}[/dim]")
    console.print(f"[dim]Details were written to {escape(str(services.error_log.path))}[/dim]")


def main(argv: list[str] | None = None, services: Services | None = None) -> None:
    """CLI entry point for ``filegen`` and ``python -m filegen``."""
    parser = build_parser()
    args = parser.parse_args(argv)
    services = services or Services.create()
    handler, message = COMMANDS[args.command]

    try:
        asyncio.run(handler(args, services))
    except KeyboardInterrupt:
        print_warning("Aborted.")
        sys.exit(130)
    except Exception as exc:
        cause = exc.error if isinstance(exc, StageError) else exc
        if isinstance(cause, TemplateNotFoundError):
            # Reported without touching the disk, not even the error log.
            print_error(cause.message)
            sys.exit(1)
        _report(exc, message, services)
        sys.exit(1)
