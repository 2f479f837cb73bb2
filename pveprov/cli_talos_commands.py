"""Talos VM CLI command."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from pveprov.cli_support import (
    confirm_action,
    handle_cancel,
    handle_cli_error,
    is_mock,
    print_info,
    print_state,
    print_success,
    run_host_checks,
    setup_logging,
)
from pveprov.config import TALOS, ParameterResolver, load_overrides
from pveprov.core.config import get_config
from pveprov.core.errors import ProvisionError, UserCancelled
from pveprov.core.logger import get_logger
from pveprov.core.orchestrator import TalosOrchestrator
from pveprov.models.request import LocatedTarget, ProvisionRequest
from pveprov.prompts import DefaultsSource, TyperPrompts
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.locator import ResourceLocator
from pveprov.services.proxmox.vm import VMProvisioner
from pveprov.services.talos.factory import ImageFactoryClient
from pveprov.services.talos.releases import latest_talos_version

logger = get_logger(__name__)


def describe_vm(request: ProvisionRequest, target: LocatedTarget) -> str:
    network = request.network
    lines = [
        f"Virtual Machine ID: {target.vmid}",
        f"Machine Type: {request.machine}",
        f"Disk Size: {request.disk_size}G",
        f"Disk Cache: {request.disk_cache or 'default'}",
        f"Hostname: {request.name}",
        f"CPU Model: {request.cpu_type}",
        f"CPU Cores: {request.cores}",
        f"RAM Size: {request.memory} MiB",
        f"Bridge: {network.bridge}",
        f"MAC Address: {network.mac or 'auto'}",
        f"VLAN: {network.vlan or 'default'}",
        f"Interface MTU Size: {network.mtu or 'default'}",
        f"QEMU Guest Agent: {'yes' if request.guest_agent else 'no'}",
        f"Talos Version: {request.version}",
        f"Storage: {target.storage.name} ({target.storage.type})",
        f"Start VM when completed: {'yes' if request.start else 'no'}",
    ]
    return "\n".join(lines)


def print_next_steps(console: Console, vmid: int, name: str) -> None:
    console.print("\n[bold]Next steps:[/bold]")
    console.print(f"  1. Find the node IP on the VM console: qm terminal {vmid}")
    console.print("  2. Generate machine configs: talosctl gen config <cluster> https://<node-ip>:6443")
    console.print("  3. Apply the config: talosctl apply-config --insecure --nodes <node-ip> --file controlplane.yaml")
    console.print("  4. Bootstrap the cluster: talosctl bootstrap --nodes <node-ip> --endpoints <node-ip>")
    print_info(console, f"{name} boots into Talos maintenance mode until a config is applied")


def register_talos_commands(root: typer.Typer, console: Console) -> None:
    """Attach the ``talos`` command to the main CLI."""

    @root.command("talos")
    def talos(
        advanced: bool = typer.Option(False, "--advanced", "-a", help="Prompt for every setting instead of using defaults"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Skip the final confirmation"),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML file with a 'talos:' section of overrides"),
        dry_run: bool = typer.Option(False, "--dry-run", help="Log host commands and downloads instead of running them"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Log file path"),
        skip_checks: bool = typer.Option(False, "--skip-checks", help="Skip Proxmox host environment checks"),
    ) -> None:
        """Create a Talos Linux VM from an Image Factory disk image."""
        setup_logging(log_file, verbose)
        mock = dry_run or is_mock()
        if mock:
            console.print("[yellow]MOCK MODE: no changes will be made[/yellow]")

        host = ProxmoxHost(mock=mock)
        source = TyperPrompts(console) if advanced else DefaultsSource()

        def version_lookup() -> str:
            if mock:
                version = get_config().fallback_talos_version
                logger.info(f"MOCK: Would query the latest Talos release, using {version}")
                return version
            return latest_talos_version()

        def confirm(request: ProvisionRequest, target: LocatedTarget) -> None:
            console.print(f"\n[bold]Creating a Talos VM using the settings below:[/bold]\n{describe_vm(request, target)}\n")
            if not confirm_action("Ready to create a Talos VM?", yes_flag=yes, mock=mock):
                raise UserCancelled("declined final confirmation")

        orchestrator = None
        try:
            if not skip_checks:
                run_host_checks(console, mock, interactive=not yes)

            resolver = ParameterResolver(
                TALOS,
                overrides=load_overrides('talos', config),
                source=source,
                id_in_use=host.resource_exists,
                version_lookup=version_lookup,
            )
            locator = ResourceLocator(host, chooser=source.select if advanced else None)
            orchestrator = TalosOrchestrator(
                resolver,
                locator,
                ImageFactoryClient(mock=mock),
                VMProvisioner(host),
                confirm=confirm,
            )
            state = orchestrator.run()
        except UserCancelled:
            handle_cancel(console)
        except (ProvisionError, FileNotFoundError) as e:
            handle_cli_error(e, console, verbose, state=orchestrator.state if orchestrator else None)

        print_state(console, state)
        if state.degraded_steps:
            console.print(f"[yellow]Completed with warnings: {', '.join(state.degraded_steps)}[/yellow]")
        print_success(console, f"Created Talos VM {orchestrator.request.name} ({state.vmid})")
        print_next_steps(console, state.vmid, orchestrator.request.name)
