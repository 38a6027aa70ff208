"""Tests for writing template trees to disk (filegen.scaffolder.materializer).

Covers:
- Exactly one file per leaf, with exactly the leaf's content
- Backups of overwritten files, never a mix of old and new content
- No ``.tmp`` leftovers
- FILE_CREATION_ERROR on failure, without rollback
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from unittest.mock import patch

import pytest

from filegen.errors import FILE_CREATION_ERROR, FileCreationError
from filegen.scaffolder.materializer import (
    Materializer,
    backup_path_for,
    ensure_directory,
    write_file_atomic,
)
from filegen.scaffolder.tree import from_mapping

pytestmark = pytest.mark.unit

BACKUP_RE = re.compile(r"^page\.tsx\.backup-\d+$")


@pytest.fixture
def tree():
    return from_mapping(
        {
            "src": {
                "app": {"page.tsx": "export default function Page() {}\n", "layout.tsx": ""},
                "components": {"Products.tsx": "products"},
                "types": {},
            },
            "README.md": "# Demo\n",
        }
    )


def all_files(root: Path) -> dict[str, str]:
    return {
        p.relative_to(root).as_posix(): p.read_text(encoding="utf-8")
        for p in root.rglob("*")
        if p.is_file()
    }


class TestMaterialize:
    async def test_fresh_directory_gets_exact_tree(self, tree, tmp_path: Path):
        root = tmp_path / "out"
        result = await Materializer(quiet=True).materialize(tree, root)

        assert all_files(root) == tree.files()
        for rel in tree.directories():
            assert (root / rel).is_dir()
        assert result.backups == []
        assert len(result.files) == 4
        assert result.root == root

    async def test_existing_file_is_backed_up(self, tree, tmp_path: Path):
        page = tmp_path / "src" / "app" / "page.tsx"
        page.parent.mkdir(parents=True)
        page.write_text("user edits", encoding="utf-8")

        result = await Materializer(quiet=True).materialize(tree, tmp_path)

        assert page.read_text(encoding="utf-8") == "export default function Page() {}\n"
        backups = [p for p in page.parent.iterdir() if BACKUP_RE.match(p.name)]
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "user edits"
        assert result.backups == backups

    async def test_no_tmp_files_remain(self, tree, tmp_path: Path):
        await Materializer(quiet=True).materialize(tree, tmp_path)
        await Materializer(quiet=True).materialize(tree, tmp_path)
        assert not list(tmp_path.rglob("*.tmp"))

    async def test_unrelated_files_are_left_alone(self, tree, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}", encoding="utf-8")
        await Materializer(quiet=True).materialize(tree, tmp_path)
        assert (tmp_path / "package.json").read_text(encoding="utf-8") == "{}"

    async def test_bracketed_paths(self, tmp_path: Path):
        tree = from_mapping({"src/app/products/[category]/[product]/page.tsx": "x"})
        await Materializer().materialize(tree, tmp_path)
        assert (tmp_path / "src/app/products/[category]/[product]/page.tsx").exists()

    async def test_failure_aborts_without_rollback(self, tmp_path: Path):
        tree = from_mapping({"a.txt": "a", "blocked": {"b.txt": "b"}, "z.txt": "z"})
        (tmp_path / "blocked").write_text("a file where a directory should be", encoding="utf-8")

        with pytest.raises(FileCreationError) as exc_info:
            await Materializer(quiet=True).materialize(tree, tmp_path)

        assert exc_info.value.code == FILE_CREATION_ERROR
        assert "blocked" in exc_info.value.details["path"]
        assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "a"
        assert not (tmp_path / "z.txt").exists()

    async def test_write_file(self, tmp_path: Path):
        target = tmp_path / "deep" / "file.ts"
        assert await Materializer(quiet=True).write_file(target, "one") is None
        backup = await Materializer(quiet=True).write_file(target, "two")
        assert target.read_text(encoding="utf-8") == "two"
        assert backup is not None and backup.read_text(encoding="utf-8") == "one"


class TestWriteFileAtomic:
    def test_creates_parents(self, tmp_path: Path):
        target = tmp_path / "a" / "b" / "c.txt"
        write_file_atomic(target, "content")
        assert target.read_text(encoding="utf-8") == "content"

    def test_rename_failure_leaves_destination_untouched(self, tmp_path: Path):
        target = tmp_path / "page.tsx"
        target.write_text("old", encoding="utf-8")

        with patch("filegen.scaffolder.materializer.os.replace", side_effect=OSError("EXDEV")):
            with pytest.raises(FileCreationError) as exc_info:
                write_file_atomic(target, "new")

        assert target.read_text(encoding="utf-8") == "old"
        assert not (tmp_path / "page.tsx.tmp").exists()
        assert exc_info.value.details["path"] == str(target)
        assert "EXDEV" in exc_info.value.details["error"]
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_backup_names_do_not_collide(self, tmp_path: Path):
        target = tmp_path / "page.tsx"
        target.write_text("x", encoding="utf-8")
        with patch("filegen.scaffolder.materializer._now_millis", return_value=1700000000000):
            first = write_file_atomic(target, "y")
            second = write_file_atomic(target, "z")
        assert first.name == "page.tsx.backup-1700000000000"
        assert second.name == "page.tsx.backup-1700000000001"
        assert first.read_text(encoding="utf-8") == "x"
        assert second.read_text(encoding="utf-8") == "y"

    def test_backup_path_for(self, tmp_path: Path):
        path = tmp_path / "a.txt"
        assert backup_path_for(path, 5) == tmp_path / "a.txt.backup-5"


class TestEnsureDirectory:
    def test_idempotent(self, tmp_path: Path):
        target = tmp_path / "x" / "y"
        assert ensure_directory(target) == target
        assert ensure_directory(target) == target
        assert target.is_dir()

    def test_failure(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(FileCreationError):
            ensure_directory(blocker / "sub")


@pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
async def test_read_only_directory(tmp_path: Path):
    locked = tmp_path / "locked"
    locked.mkdir()
    locked.chmod(0o500)
    try:
        with pytest.raises(FileCreationError):
            await Materializer(quiet=True).write_file(locked / "a.txt", "a")
    finally:
        locked.chmod(0o700)
