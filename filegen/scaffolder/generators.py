"""Generators for single source files inside an existing project.

Backs the ``component``, ``api-routes`` and ``db-schema`` sub-commands.  All
output goes through :class:`TemplateRenderer`, so every file is written
atomically and a file that already exists is backed up first.
"""

from __future__ import annotations

import re
from pathlib import Path

from filegen.errors import FileGenError
from filegen.scaffolder.templates import TemplateRenderer
from filegen.utils import pascal_case

HTTP_METHODS: list[str] = ["GET", "POST", "PUT", "DELETE"]
SCHEMA_TYPES: tuple[str, ...] = ("mongodb", "prisma")

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_ROUTE_SEGMENT = re.compile(r"^[A-Za-z0-9_\[\].-]+$")

INVALID_NAME = "INVALID_NAME"


def _invalid(kind: str, value: str) -> FileGenError:
    return FileGenError(
        f"Invalid {kind}: {value!r}", code=INVALID_NAME, details={kind: value}
    )


class SourceGenerator:
    """Renders components, API routes and database schemas."""

    def __init__(self, renderer: TemplateRenderer) -> None:
        self.renderer = renderer

    async def component(
        self, name: str, props: list[str] | None = None, target_dir: str | Path = "."
    ) -> Path:
        """Write ``components/<Name>.tsx`` with an optional props interface."""
        component_name = pascal_case(name)
        if not component_name or not _IDENTIFIER.match(component_name):
            raise _invalid("component name", name)
        props = props or []
        for prop in props:
            if not _IDENTIFIER.match(prop):
                raise _invalid("prop name", prop)

        output = Path(target_dir) / "components" / f"{component_name}.tsx"
        return await self.renderer.render_to_file(
            "components/component.tsx.j2",
            output,
            {"name": component_name, "props": props},
        )

    async def api_routes(self, routes: list[str], target_dir: str | Path = ".") -> list[Path]:
        """Write ``app/api/<route>/route.ts`` with CRUD handlers for each route."""
        written: list[Path] = []
        for route in routes:
            segments = [s for s in route.strip("/").split("/") if s]
            if not segments or not all(
                _ROUTE_SEGMENT.match(s) and s not in (".", "..") for s in segments
            ):
                raise _invalid("route", route)
            output = Path(target_dir, "app", "api", *segments, "route.ts")
            written.append(
                await self.renderer.render_to_file(
                    "api/route.ts.j2",
                    output,
                    {"route": "/".join(segments), "methods": HTTP_METHODS},
                )
            )
        return written

    async def db_schema(
        self,
        schema_type: str = "mongodb",
        output_dir: str | Path = ".",
        models: list[str] | None = None,
        database: str = "app",
    ) -> list[Path]:
        """Write a database layer for *schema_type*.

        ``mongodb`` produces ``lib/db.ts`` plus one mongoose model per name
        under ``lib/models/``; ``prisma`` produces ``prisma/schema.prisma``.
        """
        if schema_type not in SCHEMA_TYPES:
            raise FileGenError(
                f"Unsupported schema type: {schema_type}. "
                f"Supported types: {', '.join(SCHEMA_TYPES)}",
                code=INVALID_NAME,
                details={"type": schema_type},
            )
        model_names = [pascal_case(m) for m in (models or ["User"])]
        for original, model in zip(models or ["User"], model_names):
            if not model or not _IDENTIFIER.match(model):
                raise _invalid("model name", original)

        root = Path(output_dir)
        if schema_type == "prisma":
            return [
                await self.renderer.render_to_file(
                    "db/schema.prisma.j2",
                    root / "prisma" / "schema.prisma",
                    {"models": model_names},
                )
            ]

        written = [
            await self.renderer.render_to_file(
                "db/connection.ts.j2", root / "lib" / "db.ts", {"database": database}
            )
        ]
        for model in model_names:
            written.append(
                await self.renderer.render_to_file(
                    "db/mongoose-model.ts.j2",
                    root / "lib" / "models" / f"{model}.ts",
                    {"model": model},
                )
            )
        return written
