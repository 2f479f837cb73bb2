"""End-to-end provisioning runs.

A run resolves parameters, locates an id and storage on the host, then
works inside a scratch directory that is removed however the run ends.
Nothing touches the network before the target has been located.
"""
from pathlib import Path
from typing import Callable, Optional

from pveprov.config.resolver import ParameterResolver
from pveprov.core.errors import StepError, ValidationError
from pveprov.core.logger import get_logger
from pveprov.core.scratch import scratch_directory
from pveprov.models.request import LocatedTarget, ProvisionRequest
from pveprov.models.state import ProvisionState
from pveprov.services.etesync.installer import EteSyncInstaller
from pveprov.services.proxmox.container import ContainerProvisioner
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.locator import ResourceLocator
from pveprov.services.proxmox.vm import VMProvisioner
from pveprov.services.talos.factory import ImageFactoryClient

logger = get_logger(__name__)

Confirm = Callable[[ProvisionRequest, LocatedTarget], None]


class Orchestrator:
    """Resolve -> locate -> (scratch) execute, keeping the state of the run.

    ``state`` is empty until a target has been located, so a run that fails
    during resolution or location reports no completed steps.
    """

    def __init__(
        self,
        resolver: ParameterResolver,
        locator: ResourceLocator,
        confirm: Optional[Confirm] = None,
    ):
        self.resolver = resolver
        self.locator = locator
        self.confirm = confirm
        self.request: Optional[ProvisionRequest] = None
        self.target: Optional[LocatedTarget] = None
        self.state = ProvisionState()

    def run(self) -> ProvisionState:
        """Provision one resource.

        Raises:
            ValidationError, ConflictError: Before anything was created
            FetchError: The artifact could not be obtained
            StepError: A required step failed; ``self.state`` holds progress
            UserCancelled: The confirmation hook declined
        """
        self.request = self.resolver.resolve()
        self.target = self.locator.locate(self.request)
        if self.confirm:
            self.confirm(self.request, self.target)

        self.state = ProvisionState(vmid=self.target.vmid, storage=self.target.storage.name)
        with scratch_directory() as scratch:
            try:
                self.execute(self.request, self.target, scratch)
            except StepError as e:
                self.state = e.state
                raise
        return self.state

    def execute(self, request: ProvisionRequest, target: LocatedTarget, scratch: Path) -> None:
        raise NotImplementedError


class TalosOrchestrator(Orchestrator):
    """Builds a Talos VM from an Image Factory disk image."""

    def __init__(
        self,
        resolver: ParameterResolver,
        locator: ResourceLocator,
        fetcher: ImageFactoryClient,
        vms: VMProvisioner,
        confirm: Optional[Confirm] = None,
    ):
        super().__init__(resolver, locator, confirm)
        self.fetcher = fetcher
        self.vms = vms

    def execute(self, request: ProvisionRequest, target: LocatedTarget, scratch: Path) -> None:
        artifact = self.fetcher.fetch(request, scratch)
        self.vms.provision(request, target, artifact, state=self.state)


class EteSyncOrchestrator(Orchestrator):
    """Creates an LXC container and installs EteSync in it."""

    def __init__(
        self,
        resolver: ParameterResolver,
        locator: ResourceLocator,
        containers: ContainerProvisioner,
        installer: EteSyncInstaller,
        confirm: Optional[Confirm] = None,
    ):
        super().__init__(resolver, locator, confirm)
        self.containers = containers
        self.installer = installer

    def execute(self, request: ProvisionRequest, target: LocatedTarget, scratch: Path) -> None:
        self.installer.image_tag = request.version
        self.containers.provision(request, target, state=self.state)
        if not request.start:
            logger.warning("Container not started, skipping EteSync installation")
            return
        self.installer.install(target.vmid, self.state, scratch)


def update_etesync(host: ProxmoxHost, installer: EteSyncInstaller, vmid: int) -> ProvisionState:
    """Upgrade an existing EteSync container in place.

    Raises:
        ValidationError: No container with this id
        StepError: A required update step failed
    """
    if not host.succeeds(['pct', 'status', vmid]):
        raise ValidationError('vmid', f"no container {vmid} on this host")
    return installer.update(vmid)
