"""The catalog of project templates, features and plugins.

Built-in templates ship with the package under ``templates/projects/<name>``.
Templates imported with ``filegen import-template`` live under the user
template directory (``~/.filegen/templates`` by default) and are listed after
the built-ins; a built-in name always wins over an imported one.
"""

from __future__ import annotations

import asyncio
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from filegen.errors import FileGenError, TemplateNotFoundError
from filegen.runner import CommandRunner
from filegen.scaffolder.templates import TEMPLATE_ROOT
from filegen.scaffolder.tree import DirectoryNode, from_directory
from filegen.utils import print_success, quote_path, sanitize_name

BUILTIN_PROJECTS_DIR = TEMPLATE_ROOT / "projects"

TEMPLATE_EXISTS = "TEMPLATE_EXISTS"
TEMPLATE_IMPORT_FAILED = "TEMPLATE_IMPORT_FAILED"


@dataclass(frozen=True)
class Choice:
    """A selectable option: machine value plus a display label."""

    value: str
    label: str


TEMPLATES: list[Choice] = [
    Choice("e-commerce", "E-commerce store"),
    Choice("blog-post", "Blog platform"),
    Choice("tech-website", "Tech website"),
    Choice("portfolio", "Portfolio"),
    Choice("saas", "SaaS platform"),
    Choice("community", "Community forum"),
    Choice("learning", "Learning management system"),
    Choice("news", "News portal"),
]

FEATURES: list[Choice] = [
    Choice("authentication", "Authentication"),
    Choice("darkmode", "Dark Mode"),
    Choice("i18n", "Internationalization (i18n)"),
    Choice("seo", "SEO Optimization"),
    Choice("analytics", "Analytics"),
    Choice("pwa", "PWA Support"),
    Choice("responsive", "Responsive Design"),
    Choice("a11y", "Accessibility"),
]

PLUGINS: list[Choice] = [
    Choice("analytics", "Analytics"),
    Choice("seo", "SEO"),
    Choice("performance", "Performance Monitoring"),
    Choice("auth", "Authentication"),
    Choice("database", "Database Connectors"),
]

# Packages some templates need on top of the base Next.js install.
TEMPLATE_PACKAGES: dict[str, list[str]] = {
    "blog-post": ["@prisma/client", "@trpc/client", "@trpc/server"],
}


@dataclass
class TemplateInfo:
    name: str
    label: str
    path: Path
    builtin: bool = True


@dataclass
class TemplateCatalog:
    """Resolves template names to trees.

    Trees are read from disk on first use and kept for the life of the
    catalog.
    """

    builtin_dir: Path = BUILTIN_PROJECTS_DIR
    user_dir: Path | None = None
    _trees: dict[str, DirectoryNode] = field(default_factory=dict, repr=False)

    def templates(self) -> list[TemplateInfo]:
        """All available templates, built-ins first in their canonical order."""
        found: list[TemplateInfo] = []
        for choice in TEMPLATES:
            path = self.builtin_dir / choice.value
            if path.is_dir():
                found.append(TemplateInfo(choice.value, choice.label, path))
        known = {info.name for info in found}
        if self.user_dir is not None and self.user_dir.is_dir():
            for path in sorted(self.user_dir.iterdir()):
                if path.is_dir() and path.name not in known:
                    found.append(
                        TemplateInfo(path.name, f"{path.name} (imported)", path, builtin=False)
                    )
        return found

    def names(self) -> list[str]:
        return [info.name for info in self.templates()]

    def info(self, name: str) -> TemplateInfo:
        """Return the entry for *name*.

        Raises:
            TemplateNotFoundError: If no template has that name.
        """
        for info in self.templates():
            if info.name == name:
                return info
        raise TemplateNotFoundError(name, self.names())

    def validate(self, name: str) -> str:
        self.info(name)
        return name

    def get(self, name: str) -> DirectoryNode:
        """Return the tree for *name*, loading it on first use."""
        if name not in self._trees:
            self._trees[name] = from_directory(self.info(name).path)
        return self._trees[name]

    def extra_packages(self, name: str) -> list[str]:
        return list(TEMPLATE_PACKAGES.get(name, []))

    # -- Importing ---------------------------------------------------------

    @staticmethod
    def name_from_url(url: str) -> str:
        """``https://host/org/my-starter.git`` -> ``my-starter``."""
        tail = url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        if tail.endswith(".git"):
            tail = tail[: -len(".git")]
        return sanitize_name(tail)

    async def import_template(
        self,
        url: str,
        runner: CommandRunner,
        name: str | None = None,
        timeout: float | None = None,
    ) -> TemplateInfo:
        """Clone *url* into the user template directory as template *name*.

        Only the latest commit is fetched and the ``.git`` directory is
        removed, leaving a plain file tree.

        Raises:
            FileGenError: ``TEMPLATE_EXISTS`` if the name is already taken,
                ``TEMPLATE_IMPORT_FAILED`` if no usable name or directory.
            CommandFailedError: If ``git clone`` fails.
        """
        if self.user_dir is None:
            raise FileGenError(
                "No user template directory configured", code=TEMPLATE_IMPORT_FAILED
            )
        template_name = sanitize_name(name) if name else self.name_from_url(url)
        if not template_name:
            raise FileGenError(
                f"Cannot derive a template name from {url}; pass --name",
                code=TEMPLATE_IMPORT_FAILED,
                details={"url": url},
            )
        if template_name in self.names():
            raise FileGenError(
                f"Template already exists: {template_name}",
                code=TEMPLATE_EXISTS,
                details={"template": template_name},
            )

        destination = self.user_dir / template_name
        self.user_dir.mkdir(parents=True, exist_ok=True)
        await runner.run(
            f"git clone --depth 1 {shlex.quote(url)} {quote_path(destination)}",
            timeout=timeout,
            retries=1,
        )
        git_dir = destination / ".git"
        if git_dir.exists():
            await asyncio.to_thread(shutil.rmtree, git_dir)
        if not destination.is_dir():
            raise FileGenError(
                f"Clone of {url} produced no directory",
                code=TEMPLATE_IMPORT_FAILED,
                details={"url": url, "path": str(destination)},
            )

        self._trees.pop(template_name, None)
        print_success(f"Imported template '{template_name}' from {url}")
        return self.info(template_name)
