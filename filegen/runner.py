"""External command execution with timeout and bounded retry.

Every shell-out filegen performs (``create-next-app``, ``npm install``,
``git clone``...) goes through :class:`CommandRunner`.  Each attempt races
the child process against a timer; a process that outlives the timer is
killed and reaped, and the attempt counts as failed.  Failed attempts are
retried after an exponential backoff of ``backoff_base * 2**attempt``
seconds.  When the last attempt fails a :class:`CommandFailedError` is
raised and the caller must assume the command had no usable effect.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from filegen.errors import CommandFailedError
from filegen.utils import console

# StreamReader line limit; create-next-app can print very long progress lines.
_MAX_OUTPUT = 10 * 1024 * 1024


@dataclass
class CommandResult:
    """Output of a successful command."""

    command: str
    stdout: str = ""
    stderr: str = ""
    attempts: int = 1


class _AttemptFailed(Exception):
    """One attempt exited non-zero, timed out, or could not be spawned."""


class CommandRunner:
    """Runs shell commands with a per-attempt timeout and retries.

    Args:
        timeout: Seconds before an attempt is cancelled.
        retries: Total attempts per command, at least 1.
        backoff_base: Delay before the second attempt; doubles afterwards.
        sleep: Coroutine used to wait between attempts (replaceable in tests).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retries: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.timeout = timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after the 0-based *attempt* fails."""
        return self.backoff_base * (2 ** attempt)

    async def run(
        self,
        command: str,
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        retries: int | None = None,
        quiet: bool = False,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run *command* through the shell until it succeeds or retries run out.

        Raises:
            CommandFailedError: After the final attempt fails.
        """
        timeout = self.timeout if timeout is None else timeout
        retries = self.retries if retries is None else retries
        if retries < 1:
            raise ValueError("retries must be at least 1")

        for attempt in range(retries):
            try:
                stdout, stderr = await self._attempt(command, cwd, timeout, env)
                return CommandResult(
                    command=command, stdout=stdout, stderr=stderr, attempts=attempt + 1
                )
            except _AttemptFailed as exc:
                if attempt == retries - 1:
                    raise CommandFailedError(
                        f"Command failed after {retries} attempts: {command}",
                        details={
                            "command": command,
                            "attempt": attempt + 1,
                            "error": str(exc),
                        },
                    ) from exc
                delay = self.backoff_delay(attempt)
                if not quiet:
                    console.print(
                        f"[dim]Attempt {attempt + 1}/{retries} failed ({exc}); "
                        f"retrying in {delay:g}s[/dim]"
                    )
                await self._sleep(delay)

        raise AssertionError("unreachable")

    async def _attempt(
        self,
        command: str,
        cwd: str | Path | None,
        timeout: float,
        env: dict[str, str] | None,
    ) -> tuple[str, str]:
        merged_env = {**os.environ, **env} if env else None
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                limit=_MAX_OUTPUT,
            )
        except OSError as exc:
            raise _AttemptFailed(f"could not start: {exc}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise _AttemptFailed(f"timed out after {timeout:g}s") from None

        stdout = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
        stderr = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            detail = stderr.splitlines()[-1] if stderr else "no output"
            raise _AttemptFailed(f"exit code {process.returncode}: {detail}")
        return stdout, stderr
