"""LXC container creation with ``pct``."""
from typing import List, Optional

from pveprov.core.errors import ConflictError
from pveprov.core.logger import get_logger
from pveprov.models.request import LocatedTarget, ProvisionRequest
from pveprov.models.state import ContainerStep, ProvisionState
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.steps import run_step, skip_step
from pveprov.services.proxmox.templates import TemplateManager

logger = get_logger(__name__)


class ContainerProvisioner:
    """Creates and starts an LXC container from a template."""

    def __init__(self, host: ProxmoxHost, templates: Optional[TemplateManager] = None):
        self.host = host
        self.templates = templates or TemplateManager(host)

    def create_command(self, request: ProvisionRequest, vmid: int, storage: str, template_ref: str) -> List:
        cmd: List = [
            'create', vmid, template_ref,
            '--hostname', request.name,
            '--cores', request.cores,
            '--memory', request.memory,
            '--swap', 512,
            '--rootfs', f'{storage}:{request.disk_size}',
            '--net0', request.network.container_net0(),
            '--ostype', 'debian',
            '--unprivileged', '1' if request.unprivileged else '0',
            # docker inside LXC needs nesting and keyctl
            '--features', 'nesting=1,keyctl=1',
            '--onboot', '1',
        ]
        if request.tags:
            cmd.extend(['--tags', ';'.join(request.tags)])
        if not request.unprivileged:
            logger.warning(f"Creating PRIVILEGED container {vmid} - it has full root access to the host")
        return cmd

    def _create(self, request: ProvisionRequest, vmid: int, storage: str, template_ref: str) -> str:
        if self.host.resource_exists(vmid):
            raise ConflictError(f"identifier {vmid} in use")
        self.host.pct(*self.create_command(request, vmid, storage, template_ref))
        return f"{vmid} ({request.name})"

    def _start(self, vmid: int) -> str:
        self.host.pct('start', vmid)
        return 'started'

    def provision(
        self,
        request: ProvisionRequest,
        target: LocatedTarget,
        state: Optional[ProvisionState] = None,
    ) -> ProvisionState:
        """Ensure the template, create the container and start it.

        Raises:
            StepError: First failing step, with the state accumulated so far
        """
        vmid, storage = target.vmid, target.storage
        state = state or ProvisionState(vmid=vmid, storage=storage.name)
        template = {}

        def ensure_template() -> str:
            template['ref'] = self.templates.ensure_available(request.template)
            return template['ref']

        run_step(state, ContainerStep.ENSURE_TEMPLATE, ensure_template)
        run_step(
            state, ContainerStep.CREATE,
            lambda: self._create(request, vmid, storage.name, template['ref']),
        )
        if request.start:
            run_step(state, ContainerStep.START, lambda: self._start(vmid))
        else:
            skip_step(state, ContainerStep.START, 'start not requested')

        logger.info(f"✓ Container {vmid} ({request.name}) created")
        return state
