"""EteSync container CLI commands."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from pveprov.cli_support import (
    confirm_action,
    handle_cancel,
    handle_cli_error,
    is_mock,
    print_state,
    print_success,
    print_warning,
    run_host_checks,
    setup_logging,
)
from pveprov.config import ETESYNC, ParameterResolver, load_overrides
from pveprov.core.errors import CommandError, ProvisionError, UserCancelled
from pveprov.core.orchestrator import EteSyncOrchestrator, update_etesync
from pveprov.models.request import LocatedTarget, ProvisionRequest
from pveprov.prompts import DefaultsSource, TyperPrompts
from pveprov.services.etesync.installer import PORT, EteSyncInstaller
from pveprov.services.proxmox.container import ContainerProvisioner
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.locator import ResourceLocator

EteSyncTyper = typer.Typer(help="EteSync server in an LXC container")


def describe_container(request: ProvisionRequest, target: LocatedTarget) -> str:
    network = request.network
    return "\n".join([
        f"Container ID: {target.vmid}",
        f"Hostname: {request.name}",
        f"Container Type: {'Unprivileged' if request.unprivileged else 'Privileged'}",
        f"Disk Size: {request.disk_size}G",
        f"CPU Cores: {request.cores}",
        f"RAM Size: {request.memory} MiB",
        f"Bridge: {network.bridge}",
        f"VLAN: {network.vlan or 'default'}",
        f"Template: {request.template}",
        f"Image Tag: {request.version}",
        f"Storage: {target.storage.name} ({target.storage.type})",
    ])


def service_url(host: ProxmoxHost, vmid: int) -> Optional[str]:
    try:
        address = host.container_ip(vmid)
    except CommandError:
        return None
    return f"http://{address}:{PORT}" if address else None


def register_etesync_commands(root: typer.Typer, console: Console) -> None:
    """Attach the ``etesync`` command group to the main CLI."""

    @EteSyncTyper.command("create")
    def create(
        advanced: bool = typer.Option(False, "--advanced", "-a", help="Prompt for every setting instead of using defaults"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Skip the final confirmation"),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML file with an 'etesync:' section of overrides"),
        dry_run: bool = typer.Option(False, "--dry-run", help="Log host commands instead of running them"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Log file path"),
        skip_checks: bool = typer.Option(False, "--skip-checks", help="Skip Proxmox host environment checks"),
    ) -> None:
        """Create a container and install the EteSync server in it."""
        setup_logging(log_file, verbose)
        mock = dry_run or is_mock()
        if mock:
            console.print("[yellow]MOCK MODE: no changes will be made[/yellow]")

        host = ProxmoxHost(mock=mock)
        source = TyperPrompts(console) if advanced else DefaultsSource()

        def confirm(request: ProvisionRequest, target: LocatedTarget) -> None:
            console.print(f"\n[bold]Creating an EteSync container using the settings below:[/bold]\n{describe_container(request, target)}\n")
            if not confirm_action("Ready to create the EteSync container?", yes_flag=yes, mock=mock):
                raise UserCancelled("declined final confirmation")

        orchestrator = None
        try:
            if not skip_checks:
                run_host_checks(console, mock, interactive=not yes)

            resolver = ParameterResolver(
                ETESYNC,
                overrides=load_overrides('etesync', config),
                source=source,
                id_in_use=host.resource_exists,
            )
            locator = ResourceLocator(host, chooser=source.select if advanced else None)
            orchestrator = EteSyncOrchestrator(
                resolver,
                locator,
                ContainerProvisioner(host),
                EteSyncInstaller(host),
                confirm=confirm,
            )
            state = orchestrator.run()
        except UserCancelled:
            handle_cancel(console)
        except (ProvisionError, FileNotFoundError) as e:
            handle_cli_error(e, console, verbose, state=orchestrator.state if orchestrator else None)

        print_state(console, state)
        print_success(console, f"Created EteSync container {orchestrator.request.name} ({state.vmid})")
        url = None if mock else service_url(host, state.vmid)
        if url:
            console.print(f"EteSync should be reachable at [bold]{url}[/bold]")
        else:
            print_warning(console, f"Could not determine the container address; EteSync listens on port {PORT}")

    @EteSyncTyper.command("update")
    def update(
        vmid: int = typer.Argument(..., help="Id of an existing EteSync container"),
        dry_run: bool = typer.Option(False, "--dry-run", help="Log host commands instead of running them"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Log file path"),
    ) -> None:
        """Upgrade the container OS and refresh the EteSync image."""
        setup_logging(log_file, verbose)
        mock = dry_run or is_mock()
        host = ProxmoxHost(mock=mock)

        try:
            state = update_etesync(host, EteSyncInstaller(host), vmid)
        except ProvisionError as e:
            handle_cli_error(e, console, verbose)

        print_state(console, state, title="Update")
        if state.degraded_steps:
            print_warning(console, f"Completed with warnings: {', '.join(state.degraded_steps)}")
        print_success(console, f"Updated container {vmid}")

    root.add_typer(EteSyncTyper, name="etesync")
