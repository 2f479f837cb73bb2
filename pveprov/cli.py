#!/usr/bin/env python3
"""pveprov CLI - Declarative provisioning for Proxmox VE."""

import typer
from rich.console import Console

from pveprov.cli_etesync_commands import register_etesync_commands
from pveprov.cli_talos_commands import register_talos_commands
from pveprov.core.logger import get_logger

app = typer.Typer(
    name="pveprov",
    help="""pveprov - Declarative provisioning for Proxmox VE

Quick start:
  pveprov talos --dry-run          # See what a Talos VM build would do
  pveprov talos                    # Build a Talos VM with defaults
  pveprov talos --advanced         # Answer every setting interactively
  pveprov etesync create           # EteSync server in an LXC container
  pveprov etesync update 105       # Upgrade an existing EteSync container
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

register_talos_commands(app, console)
register_etesync_commands(app, console)

if __name__ == "__main__":
    app()
