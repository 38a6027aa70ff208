"""CI pipeline configuration for generated projects.

Each provider maps to one or more Jinja2 templates under ``templates/ci/``.
Files are written through the materializer, so an existing pipeline file is
backed up before it is replaced.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from filegen.errors import FileGenError
from filegen.scaffolder.templates import TemplateRenderer

UNSUPPORTED_CI_PROVIDER = "UNSUPPORTED_CI_PROVIDER"


class CIGenerator:
    """Writes CI configuration for a supported provider."""

    # Provider -> {template name: output path relative to the project root}
    PROVIDERS: dict[str, dict[str, str]] = {
        "github-actions": {"ci/github-actions.yml.j2": ".github/workflows/main.yml"},
        "gitlab-ci": {"ci/gitlab-ci.yml.j2": ".gitlab-ci.yml"},
        "circle-ci": {"ci/circle-ci.yml.j2": ".circleci/config.yml"},
    }

    def __init__(self, renderer: TemplateRenderer, node_version: str = "18") -> None:
        self.renderer = renderer
        self.node_version = node_version

    @classmethod
    def providers(cls) -> list[str]:
        return list(cls.PROVIDERS)

    @classmethod
    def validate(cls, provider: str) -> str:
        """Return *provider* if supported.

        Raises:
            FileGenError: ``UNSUPPORTED_CI_PROVIDER`` listing the valid names.
        """
        if provider not in cls.PROVIDERS:
            raise FileGenError(
                f"Unsupported CI provider: {provider}. "
                f"Supported providers: {', '.join(cls.PROVIDERS)}",
                code=UNSUPPORTED_CI_PROVIDER,
                details={"provider": provider, "supported": list(cls.PROVIDERS)},
            )
        return provider

    async def generate(
        self,
        provider: str,
        target_dir: str | Path,
        context: dict[str, Any] | None = None,
    ) -> list[Path]:
        """Render every file for *provider* under *target_dir*."""
        self.validate(provider)
        ctx = {"node_version": self.node_version, **(context or {})}
        written: list[Path] = []
        for template_name, output in self.PROVIDERS[provider].items():
            path = await self.renderer.render_to_file(
                template_name, Path(target_dir) / output, ctx
            )
            written.append(path)
        return written
