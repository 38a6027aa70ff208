"""Classified errors and the append-only error log.

Every error raised by filegen on purpose is a :class:`FileGenError` carrying a
machine-readable ``code``, a ``details`` bag, and the time it was raised.  The
CLI's top-level handler writes each one it catches to ``filegen-error.log`` as
a single JSON line.
"""

from __future__ import annotations

import json
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


GENERAL_ERROR = "GENERAL_ERROR"
FILE_CREATION_ERROR = "FILE_CREATION_ERROR"
COMMAND_FAILED = "COMMAND_FAILED"
TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
CONFIG_ERROR = "CONFIG_ERROR"
MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"


class FileGenError(Exception):
    """Base class for every classified filegen failure."""

    code: str = GENERAL_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = dict(details or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation of the error."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class FileCreationError(FileGenError):
    """A directory, backup, temp write or rename failed during materialization."""

    code = FILE_CREATION_ERROR


class CommandFailedError(FileGenError):
    """An external command exhausted its retries."""

    code = COMMAND_FAILED


class TemplateNotFoundError(FileGenError):
    """The requested template name is not in the catalog."""

    code = TEMPLATE_NOT_FOUND

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(
            f'Invalid template: "{name}". Available templates: {", ".join(available)}',
            details={"template": name, "available": available},
        )
        self.name = name
        self.available = available


class ConfigError(FileGenError):
    """A run configuration file could not be read or written."""

    code = CONFIG_ERROR


class StageError(FileGenError):
    """Wraps the failure of one orchestrator stage.

    The wrapped error's code is kept so the log still shows what went wrong,
    and ``stage`` records where.
    """

    def __init__(self, stage: str, error: Exception) -> None:
        code = error.code if isinstance(error, FileGenError) else GENERAL_ERROR
        details = dict(error.details) if isinstance(error, FileGenError) else {}
        details["stage"] = stage
        details.setdefault("error", str(error))
        super().__init__(f"Stage {stage} failed: {error}", code=code, details=details)
        self.stage = stage
        self.error = error


class ErrorLog:
    """Append-only JSON-lines log of handled errors."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def record(self, error: BaseException, message: str = "An error occurred") -> dict[str, Any]:
        """Append one record for *error* and return it."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": message,
        }
        if isinstance(error, FileGenError):
            entry["code"] = error.code
            entry["error"] = error.message
            entry["details"] = error.details
        else:
            entry["code"] = GENERAL_ERROR
            entry["error"] = str(error)
            entry["details"] = {}
        entry["stack"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        return entry

    def entries(self) -> list[dict[str, Any]]:
        """Read every record back, oldest first."""
        if not self.path.exists():
            return []
        return [
            json.loads(line)
            for line in self.path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
