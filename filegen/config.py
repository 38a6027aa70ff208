"""filegen configuration.

Two models live here:

* :class:`Settings` -- tool-wide knobs (timeouts, retry counts, cache TTL,
  file names).  Created once by the CLI, optionally from ``FILEGEN_*``
  environment variables, and passed to every component that needs it.
* :class:`RunConfiguration` -- the per-project record persisted as
  ``.filegenrc.json`` so a later ``filegen update`` can re-apply the same
  template, features, and plugins.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from filegen import __version__
from filegen.errors import ConfigError

DEFAULT_FEATURES: list[str] = ["responsive", "seo"]


class Settings(BaseModel):
    """Global filegen settings."""

    version: str = Field(default=__version__)
    command_timeout: float = Field(
        default=30.0, gt=0, description="Per-attempt command timeout in seconds"
    )
    max_retries: int = Field(default=3, ge=1, description="Attempts per external command")
    backoff_base: float = Field(
        default=1.0, ge=0, description="First retry delay in seconds, doubled per attempt"
    )
    cache_ttl: float = Field(default=3600.0, gt=0, description="Dependency cache TTL in seconds")
    config_file_name: str = Field(default=".filegenrc.json")
    error_log_name: str = Field(default="filegen-error.log")
    install_timeout: float = Field(
        default=600.0, gt=0, description="Timeout for project and package installs"
    )
    registry_url: str = Field(default="https://registry.npmjs.org")
    registry_timeout: float = Field(default=15.0, gt=0)
    templates_dir: Path = Field(default_factory=lambda: Path.home() / ".filegen" / "templates")
    plugin_scope: str = Field(default="@ubaton/filegen-plugin-")
    node_version: str = Field(default="18")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            FILEGEN_TIMEOUT, FILEGEN_MAX_RETRIES, FILEGEN_BACKOFF_BASE,
            FILEGEN_INSTALL_TIMEOUT, FILEGEN_CACHE_TTL, FILEGEN_REGISTRY_URL,
            FILEGEN_TEMPLATES_DIR, FILEGEN_NODE_VERSION.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("FILEGEN_TIMEOUT"):
            kwargs["command_timeout"] = float(os.environ["FILEGEN_TIMEOUT"])
        if os.environ.get("FILEGEN_MAX_RETRIES"):
            kwargs["max_retries"] = int(os.environ["FILEGEN_MAX_RETRIES"])
        if os.environ.get("FILEGEN_BACKOFF_BASE"):
            kwargs["backoff_base"] = float(os.environ["FILEGEN_BACKOFF_BASE"])
        if os.environ.get("FILEGEN_INSTALL_TIMEOUT"):
            kwargs["install_timeout"] = float(os.environ["FILEGEN_INSTALL_TIMEOUT"])
        if os.environ.get("FILEGEN_CACHE_TTL"):
            kwargs["cache_ttl"] = float(os.environ["FILEGEN_CACHE_TTL"])
        if os.environ.get("FILEGEN_REGISTRY_URL"):
            kwargs["registry_url"] = os.environ["FILEGEN_REGISTRY_URL"]
        if os.environ.get("FILEGEN_TEMPLATES_DIR"):
            kwargs["templates_dir"] = Path(os.environ["FILEGEN_TEMPLATES_DIR"])
        if os.environ.get("FILEGEN_NODE_VERSION"):
            kwargs["node_version"] = os.environ["FILEGEN_NODE_VERSION"]
        return cls(**kwargs)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class RunConfiguration(BaseModel):
    """The ``.filegenrc.json`` record of one project.

    ``features`` and ``plugins`` behave as sets: blanks and duplicates are
    dropped on construction, first-seen order is kept for stable output.
    """

    model_config = ConfigDict(populate_by_name=True)

    template: str | None = None
    features: list[str] = Field(default_factory=lambda: list(DEFAULT_FEATURES))
    plugins: list[str] = Field(default_factory=list)
    version: str = Field(default="1.0.0")
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="lastUpdated"
    )

    @field_validator("features", "plugins")
    @classmethod
    def _as_set(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    def save(self, path: str | Path) -> Path:
        """Write the record to *path*, stamping ``lastUpdated`` first.

        Raises:
            ConfigError: If the file cannot be written.
        """
        target = Path(path)
        self.last_updated = datetime.now(timezone.utc)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(
                self.model_dump_json(indent=2, by_alias=True) + "\n", encoding="utf-8"
            )
        except OSError as exc:
            raise ConfigError(
                f"Failed to save configuration: {target}",
                details={"path": str(target), "error": str(exc)},
            ) from exc
        return target

    @classmethod
    def load(cls, path: str | Path) -> "RunConfiguration":
        """Read and validate a record.

        Raises:
            ConfigError: If the file is missing, not JSON, or fails validation.
        """
        source = Path(path)
        try:
            raw = source.read_text(encoding="utf-8")
            return cls.model_validate(json.loads(raw))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise ConfigError(
                f"Failed to load configuration: {source}",
                details={"path": str(source), "error": str(exc)},
            ) from exc

    @classmethod
    def load_or_create(cls, path: str | Path) -> "RunConfiguration":
        """Return the record at *path*, writing a default one if absent."""
        source = Path(path)
        if source.exists():
            return cls.load(source)
        config = cls()
        config.save(source)
        return config
