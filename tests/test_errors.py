"""Tests for the error classes and the JSON-lines error log (filegen.errors)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from filegen.errors import (
    COMMAND_FAILED,
    FILE_CREATION_ERROR,
    GENERAL_ERROR,
    TEMPLATE_NOT_FOUND,
    CommandFailedError,
    ConfigError,
    ErrorLog,
    FileCreationError,
    FileGenError,
    StageError,
    TemplateNotFoundError,
)

pytestmark = pytest.mark.unit


class TestFileGenError:
    def test_defaults(self):
        err = FileGenError("boom")
        assert err.message == "boom"
        assert err.code == GENERAL_ERROR
        assert err.details == {}
        assert err.timestamp
        assert str(err) == "boom"

    def test_subclass_codes(self):
        assert FileCreationError("x").code == FILE_CREATION_ERROR
        assert CommandFailedError("x").code == COMMAND_FAILED
        assert ConfigError("x").code == "CONFIG_ERROR"

    def test_explicit_code_overrides_class_code(self):
        err = FileGenError("x", code="CUSTOM", details={"path": "/tmp/a"})
        assert err.code == "CUSTOM"
        assert FileGenError.code == GENERAL_ERROR

    def test_details_are_copied(self):
        details = {"a": 1}
        err = FileGenError("x", details=details)
        details["a"] = 2
        assert err.details == {"a": 1}

    def test_to_dict_is_json_serialisable(self):
        err = CommandFailedError("failed", details={"command": "npm i", "attempt": 3})
        data = json.loads(json.dumps(err.to_dict()))
        assert data["name"] == "CommandFailedError"
        assert data["code"] == COMMAND_FAILED
        assert data["details"]["attempt"] == 3


class TestTemplateNotFoundError:
    def test_message_lists_available_templates(self):
        err = TemplateNotFoundError("nope", ["e-commerce", "blog-post"])
        assert err.code == TEMPLATE_NOT_FOUND
        assert 'Invalid template: "nope"' in err.message
        assert "e-commerce, blog-post" in err.message
        assert err.details["available"] == ["e-commerce", "blog-post"]


class TestStageError:
    def test_keeps_wrapped_code_and_adds_stage(self):
        inner = FileCreationError("disk full", details={"path": "/x"})
        err = StageError("applying_template", inner)
        assert err.code == FILE_CREATION_ERROR
        assert err.details["stage"] == "applying_template"
        assert err.details["path"] == "/x"
        assert err.error is inner
        assert "applying_template" in err.message

    def test_plain_exception_becomes_general_error(self):
        err = StageError("installing_toolchain", RuntimeError("nope"))
        assert err.code == GENERAL_ERROR
        assert err.details == {"stage": "installing_toolchain", "error": "nope"}


class TestErrorLog:
    def test_record_appends_json_lines(self, tmp_path: Path):
        log = ErrorLog(tmp_path / "filegen-error.log")
        try:
            raise CommandFailedError("npm failed", details={"command": "npm i"})
        except CommandFailedError as exc:
            log.record(exc, "Error during setup")
        log.record(ValueError("bad value"))

        lines = log.path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["message"] == "Error during setup"
        assert first["code"] == COMMAND_FAILED
        assert first["error"] == "npm failed"
        assert first["details"] == {"command": "npm i"}
        assert "Traceback" in first["stack"]
        assert "timestamp" in first

        second = json.loads(lines[1])
        assert second["code"] == GENERAL_ERROR
        assert second["message"] == "An error occurred"

    def test_entries(self, tmp_path: Path):
        log = ErrorLog(tmp_path / "logs" / "errors.log")
        assert log.entries() == []
        log.record(FileGenError("one"))
        log.record(FileGenError("two"))
        assert [e["error"] for e in log.entries()] == ["one", "two"]
