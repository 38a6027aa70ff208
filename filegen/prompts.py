"""Interactive prompts.

:class:`Prompter` asks the questions filegen needs when a value was given
neither on the command line nor in a config file: pick one template, tick
several features, choose a package manager, confirm an update.  Choices are
shown as a numbered list and answered by number.  Tests pass a scripted
object with the same three methods instead.
"""

from __future__ import annotations

import sys
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt

from filegen.errors import ConfigError
from filegen.scaffolder.catalog import Choice
from filegen.utils import console as default_console


class PrompterProtocol(Protocol):
    def select(self, message: str, choices: list[Choice], default: str | None = None) -> str: ...

    def checkbox(
        self, message: str, choices: list[Choice], defaults: list[str] | None = None
    ) -> list[str]: ...

    def confirm(self, message: str, default: bool = True) -> bool: ...


class Prompter:
    """Numbered-menu prompts on the shared Rich console.

    When stdin is not a terminal nothing is asked: defaults are returned, and
    a question without a default raises :class:`ConfigError`.
    """

    def __init__(self, console: Console | None = None, interactive: bool | None = None) -> None:
        self.console = console or default_console
        self.interactive = sys.stdin.isatty() if interactive is None else interactive

    def _show(self, message: str, choices: list[Choice], marked: set[str]) -> None:
        self.console.print(f"[bold cyan]?[/bold cyan] [bold]{message}[/bold]")
        for i, choice in enumerate(choices, 1):
            mark = "[green]*[/green]" if choice.value in marked else " "
            self.console.print(f"  {mark} {i}) {choice.label} [dim]({choice.value})[/dim]")

    def select(self, message: str, choices: list[Choice], default: str | None = None) -> str:
        """Return the value of exactly one of *choices*."""
        if not self.interactive:
            if default is None:
                raise ConfigError(
                    f"{message} needs an answer but input is not interactive",
                    details={"choices": [c.value for c in choices]},
                )
            return default
        self._show(message, choices, {default} if default else set())
        numbers = [str(i) for i in range(1, len(choices) + 1)]
        default_number = next(
            (str(i) for i, c in enumerate(choices, 1) if c.value == default), None
        )
        if default_number is None:
            answer = Prompt.ask("  Enter number", choices=numbers, console=self.console)
        else:
            answer = Prompt.ask(
                "  Enter number", choices=numbers, default=default_number, console=self.console
            )
        return choices[int(answer) - 1].value

    def checkbox(
        self, message: str, choices: list[Choice], defaults: list[str] | None = None
    ) -> list[str]:
        """Return the values of any number of *choices*.

        Numbers are separated by spaces or commas; ``all`` selects everything
        and an empty answer keeps the pre-selected *defaults*.
        """
        defaults = list(defaults or [])
        if not self.interactive:
            return defaults
        self._show(message, choices, set(defaults))
        while True:
            raw = Prompt.ask(
                "  Enter numbers (or 'all')", default="", show_default=False, console=self.console
            ).strip().lower()
            if not raw:
                return defaults
            if raw == "all":
                return [c.value for c in choices]
            try:
                picked = [int(part) for part in raw.replace(",", " ").split()]
            except ValueError:
                self.console.print("[red]  Please enter numbers separated by spaces.[/red]")
                continue
            if all(1 <= n <= len(choices) for n in picked):
                return list(dict.fromkeys(choices[n - 1].value for n in picked))
            self.console.print("[red]  Invalid choice. Please try again.[/red]")

    def confirm(self, message: str, default: bool = True) -> bool:
        if not self.interactive:
            return default
        return Confirm.ask(message, default=default, console=self.console)
