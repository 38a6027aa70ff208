"""Unit tests for shared helpers (filegen.utils)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from filegen.utils import (
    format_duration,
    format_size,
    load_json,
    pascal_case,
    quote_path,
    sanitize_name,
    split_csv,
)

pytestmark = pytest.mark.unit


class TestQuotePath:
    def test_plain_path_unchanged(self):
        assert quote_path("/tmp/app") == "/tmp/app"

    def test_path_with_space_is_quoted(self):
        assert quote_path("/tmp/my app") == '"/tmp/my app"'

    @pytest.mark.parametrize("char", ["(", ")", "&", "^", "%", "!"])
    def test_special_characters_are_quoted(self, char):
        assert quote_path(f"/tmp/a{char}b") == f'"/tmp/a{char}b"'

    def test_embedded_quotes_escaped(self):
        assert quote_path('/tmp/say "hi"') == '"/tmp/say \\"hi\\""'

    def test_empty(self):
        assert quote_path(None) == ""
        assert quote_path("") == ""

    def test_accepts_path_objects(self):
        assert quote_path(Path("/tmp/app")) == "/tmp/app"


class TestSplitCsv:
    def test_basic(self):
        assert split_csv("a,b, c") == ["a", "b", "c"]

    def test_drops_blanks(self):
        assert split_csv("a,,b,") == ["a", "b"]

    def test_none_and_empty(self):
        assert split_csv(None) == []
        assert split_csv("") == []


class TestNames:
    def test_sanitize_name(self):
        assert sanitize_name("My Starter.git") == "my-starter-git"
        assert sanitize_name("--weird__name!!") == "weird__name"

    @pytest.mark.parametrize(
        "value,expected",
        [("user-card", "UserCard"), ("user_card", "UserCard"), ("userCard", "UserCard"), ("", "")],
    )
    def test_pascal_case(self, value, expected):
        assert pascal_case(value) == expected


class TestLoadJson:
    def test_object(self, tmp_path: Path):
        path = tmp_path / "a.json"
        path.write_text(json.dumps({"a": 1}), encoding="utf-8")
        assert load_json(path) == {"a": 1}

    def test_non_object_is_wrapped(self, tmp_path: Path):
        path = tmp_path / "a.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert load_json(path) == {"_root": [1, 2]}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_json(tmp_path / "missing.json")


class TestFormatting:
    def test_format_duration(self):
        assert format_duration(3.7) == "3.7s"
        assert format_duration(65.2) == "1m 5s"
        assert format_duration(-1) == "0.0s"

    def test_format_size(self):
        assert format_size(512) == "512 B"
        assert format_size(1536) == "1.5 KB"
        assert format_size(5 * 1024 * 1024) == "5.0 MB"
