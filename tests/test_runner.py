"""Tests for the retrying command runner (filegen.runner).

Commands are real child processes running the current Python interpreter,
so these tests need no Node.js tooling.  Backoff sleeps are recorded rather
than awaited.
"""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from filegen.errors import COMMAND_FAILED, CommandFailedError
from filegen.runner import CommandRunner

pytestmark = pytest.mark.unit


def py(code: str) -> str:
    """A shell command running *code* with this interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


@pytest.fixture
def runner(recording_sleep) -> CommandRunner:
    return CommandRunner(timeout=10, retries=3, backoff_base=1.0, sleep=recording_sleep)


class TestSuccess:
    async def test_returns_output_on_first_attempt(self, runner, recording_sleep):
        result = await runner.run(py("print('hello')"))
        assert result.stdout == "hello"
        assert result.attempts == 1
        assert recording_sleep.delays == []

    async def test_captures_stderr(self, runner):
        result = await runner.run(py("import sys; sys.stderr.write('warn')"))
        assert result.stderr == "warn"

    async def test_runs_in_cwd(self, runner, tmp_path: Path):
        result = await runner.run(py("import os; print(os.getcwd())"), cwd=tmp_path)
        assert Path(result.stdout).resolve() == tmp_path.resolve()

    async def test_extra_env(self, runner):
        result = await runner.run(
            py("import os; print(os.environ['FILEGEN_TEST_VALUE'])"),
            env={"FILEGEN_TEST_VALUE": "42"},
        )
        assert result.stdout == "42"

    async def test_succeeds_on_later_attempt(self, runner, recording_sleep, tmp_path: Path):
        counter = tmp_path / "count"
        code = (
            "import pathlib, sys\n"
            f"p = pathlib.Path({str(counter)!r})\n"
            "n = int(p.read_text()) + 1 if p.exists() else 1\n"
            "p.write_text(str(n))\n"
            "sys.exit(0 if n >= 2 else 1)\n"
        )
        result = await runner.run(py(code), quiet=True)
        assert result.attempts == 2
        assert counter.read_text() == "2"
        assert recording_sleep.delays == [1.0]


class TestFailure:
    async def test_always_failing_command_tries_exactly_retries_times(
        self, runner, recording_sleep, tmp_path: Path
    ):
        counter = tmp_path / "count"
        code = (
            "import pathlib, sys\n"
            f"p = pathlib.Path({str(counter)!r})\n"
            "p.write_text(str(int(p.read_text()) + 1 if p.exists() else 1))\n"
            "sys.stderr.write('first line\\nlast line')\n"
            "sys.exit(3)\n"
        )
        with pytest.raises(CommandFailedError) as exc_info:
            await runner.run(py(code), quiet=True)

        assert counter.read_text() == "3"
        # 1s + 2s between the three attempts
        assert recording_sleep.delays == [1.0, 2.0]
        err = exc_info.value
        assert err.code == COMMAND_FAILED
        assert err.details["attempt"] == 3
        assert "exit code 3" in err.details["error"]
        assert "last line" in err.details["error"]
        assert err.details["command"] == py(code)
        assert err.__cause__ is not None

    async def test_single_retry_never_sleeps(self, recording_sleep):
        runner = CommandRunner(retries=1, sleep=recording_sleep)
        with pytest.raises(CommandFailedError):
            await runner.run(py("raise SystemExit(1)"))
        assert recording_sleep.delays == []

    async def test_per_call_retries_override(self, runner, recording_sleep):
        with pytest.raises(CommandFailedError) as exc_info:
            await runner.run(py("raise SystemExit(1)"), retries=4, quiet=True)
        assert exc_info.value.details["attempt"] == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    async def test_timeout_counts_as_failed_attempt(self, recording_sleep):
        runner = CommandRunner(timeout=0.2, retries=1, sleep=recording_sleep)
        with pytest.raises(CommandFailedError) as exc_info:
            await runner.run(py("import time; time.sleep(5); print('done')"))
        assert "timed out" in exc_info.value.details["error"]

    async def test_timeout_is_retried(self, recording_sleep):
        runner = CommandRunner(timeout=0.2, retries=2, backoff_base=0.5, sleep=recording_sleep)
        with pytest.raises(CommandFailedError) as exc_info:
            await runner.run(py("import time; time.sleep(5)"), quiet=True)
        assert exc_info.value.details["attempt"] == 2
        assert recording_sleep.delays == [0.5]

    async def test_spawn_error(self, runner):
        with patch(
            "filegen.runner.asyncio.create_subprocess_shell",
            new=AsyncMock(side_effect=OSError("no shell")),
        ):
            with pytest.raises(CommandFailedError) as exc_info:
                await runner.run("anything", quiet=True)
        assert "could not start" in exc_info.value.details["error"]


class TestConfiguration:
    def test_backoff_delay(self):
        runner = CommandRunner(backoff_base=1.0)
        assert [runner.backoff_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_base_scales(self):
        assert CommandRunner(backoff_base=0.25).backoff_delay(2) == 1.0

    def test_zero_retries_rejected(self):
        with pytest.raises(ValueError):
            CommandRunner(retries=0)

    async def test_zero_retries_per_call_rejected(self, runner):
        with pytest.raises(ValueError):
            await runner.run("true", retries=0)
