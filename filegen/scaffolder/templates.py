"""Jinja2 template rendering for generated source files.

Provides the TemplateRenderer class which loads ``.j2`` templates from the
``filegen/scaffolder/templates/`` directory (components, API routes, database
schemas, CI pipelines) and renders them with a context dictionary.  The
project templates under ``templates/projects/`` are plain file trees and are
not rendered.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from filegen.scaffolder.materializer import Materializer
from filegen.utils import pascal_case


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

TEMPLATE_ROOT = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for generated files.

    Undefined variables raise instead of rendering as empty strings, so a
    missing context key shows up as an error rather than a broken file.
    """

    def __init__(
        self,
        template_dir: str | Path | None = None,
        materializer: Materializer | None = None,
    ) -> None:
        self.template_dir = Path(template_dir) if template_dir else TEMPLATE_ROOT
        self.materializer = materializer or Materializer()
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([], default_for_string=False),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = _camel_case_filter
        self.env.filters["kebab_case"] = _kebab_case_filter

    # -- Single template rendering -----------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render one template, e.g. ``"ci/github-actions.yml.j2"``."""
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    # -- File-based rendering (async) --------------------------------------

    async def render_to_file(
        self,
        template_path: str,
        output_path: str | Path,
        context: dict[str, Any],
    ) -> Path:
        """Render a template and write it atomically to *output_path*.

        An existing file is backed up first, as for any materialized file.
        """
        content = self.render(template_path, context)
        out = Path(output_path)
        await self.materializer.write_file(out, content)
        return out

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*."""
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix() for p in search_dir.rglob("*.j2")
        )


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = pascal_case(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def _kebab_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some_thing`` to ``some-thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1-\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", s1)
    return re.sub(r"[_\s]+", "-", s2).lower()
