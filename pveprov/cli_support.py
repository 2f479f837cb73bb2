"""Shared utilities for pveprov CLI modules."""
from __future__ import annotations

import os
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pveprov.core.errors import StepError, UserCancelled
from pveprov.core.host_checks import HostChecks
from pveprov.models.state import ProvisionState, StepStatus

STATUS_STYLES = {
    StepStatus.COMPLETED: "green",
    StepStatus.SKIPPED: "dim",
    StepStatus.DEGRADED: "yellow",
}


def is_mock() -> bool:
    """Return True when CLI runs in mock mode."""
    return os.environ.get("PVEPROV_MOCK") == "1"


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up console verbosity and file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from pveprov.core.logger import set_console_level, setup_file_logging
    set_console_level(verbose)
    setup_file_logging(log_file=log_file, verbose=verbose)


def confirm_action(message: str, yes_flag: bool = False, mock: bool = False) -> bool:
    """Prompt user for confirmation unless --yes or mock mode.

    Raises:
        UserCancelled: The prompt was aborted
    """
    if yes_flag or mock:
        return True
    try:
        return typer.confirm(message, default=True)
    except typer.Abort as e:
        raise UserCancelled(message) from e


def run_host_checks(console: Console, mock: bool, interactive: bool) -> None:
    """Verify the node unless in mock mode; over SSH, ask before continuing."""
    if not mock:
        console.print("[dim]Checking Proxmox host environment...[/dim]")
    HostChecks(mock=mock).run_all(confirm_ssh=confirm_action if interactive else None)


def print_state(console: Console, state: ProvisionState, title: str = "Steps") -> None:
    """Print the recorded steps of a run as a table."""
    if state.is_empty:
        console.print("[dim]No steps completed[/dim]")
        return

    table = Table(title=title)
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for record in state.records:
        style = STATUS_STYLES[record.status]
        table.add_row(record.step, f"[{style}]{record.status.value}[/{style}]", record.detail)
    console.print(table)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1,
    state: Optional[ProvisionState] = None,
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
        state: Progress of the failed run, printed when it has any steps
    """
    if isinstance(e, StepError):
        state = e.state
        console.print(f"[red]Error:[/red] step [bold]{e.step}[/bold] failed")
        if state is not None and state.vmid is not None:
            console.print(f"  id: {state.vmid}")
        console.print(f"  cause: {e.cause}")
        stderr = getattr(e.cause, "stderr", "")
        if stderr:
            console.print(f"[dim]{stderr.strip()}[/dim]")
    else:
        console.print(f"[red]Error:[/red] {e}")

    if state is not None and not state.is_empty:
        print_state(console, state, title="Completed before failure")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def handle_cancel(console: Console) -> None:
    console.print("[yellow]User exited script.[/yellow]")
    raise typer.Exit(0)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    console.print(f"[cyan]{prefix}[/cyan] {message}")
