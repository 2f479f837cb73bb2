"""Interactive input sources used by the parameter resolver."""
from typing import Sequence

import typer
from rich.console import Console

from pveprov.core.errors import UserCancelled


class DefaultsSource:
    """Non-interactive source: every question is answered with its default."""

    interactive = False

    def text(self, label: str, default: str = "") -> str:
        return default

    def select(self, label: str, choices: Sequence[str], default: str) -> str:
        return default

    def notify(self, message: str) -> None:
        pass


class TyperPrompts:
    """Terminal prompts via typer.

    Ctrl-C, EOF and an aborted prompt raise UserCancelled. Answers are
    returned as typed; the resolver validates them and re-asks.
    """

    interactive = True

    def __init__(self, console: Console):
        self.console = console

    def text(self, label: str, default: str = "") -> str:
        try:
            return typer.prompt(label, default=default, show_default=True)
        except (typer.Abort, EOFError, KeyboardInterrupt) as e:
            raise UserCancelled(label) from e

    def select(self, label: str, choices: Sequence[str], default: str) -> str:
        return self.text(f"{label} [{'/'.join(choices)}]", default)

    def notify(self, message: str) -> None:
        self.console.print(f"[red]{message}[/red]")
