"""EteSync (Etebase) server installation inside an LXC container.

Runs inside the container via ``pct exec``:

- Docker engine from Debian packages
- ``victorrds/etesync`` image pulled and a ``etesync`` container created
- systemd unit that starts/stops the Docker container
"""
from pathlib import Path
from typing import List, Optional

from pveprov.core.config import get_config
from pveprov.core.errors import CommandError
from pveprov.core.logger import get_logger
from pveprov.core.retry import retry
from pveprov.models.state import ContainerStep, ProvisionState, UpdateStep
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.steps import best_effort, run_step, skip_step

logger = get_logger(__name__)

IMAGE = 'victorrds/etesync'
APP_CONTAINER = 'etesync'
SERVICE = 'etesync'
PORT = 3735
DATA_DIR = '/srv/etesync/data'
STATIC_DIR = '/srv/etesync/static'
UNIT_PATH = f'/etc/systemd/system/{SERVICE}.service'

APT_ENV = 'DEBIAN_FRONTEND=noninteractive'

UNIT_FILE = f"""[Unit]
Description=EteSync (Etebase) Server Docker Container
After=network-online.target docker.service
Wants=network-online.target

[Service]
Restart=always
RestartSec=5s
ExecStart=/usr/bin/docker start -a {APP_CONTAINER}
ExecStop=/usr/bin/docker stop -t 10 {APP_CONTAINER}

[Install]
WantedBy=multi-user.target
"""


def docker_create_command(tag: str) -> List[str]:
    return [
        'docker', 'create',
        '--name', APP_CONTAINER,
        '--restart', 'unless-stopped',
        '-e', 'SUPER_USER=admin',
        '-e', 'SERVER=http',
        '-p', f'0.0.0.0:{PORT}:{PORT}',
        '-v', f'{DATA_DIR}:/data',
        '-v', f'{STATIC_DIR}:/srv/etebase/static',
        f'{IMAGE}:{tag}',
    ]


def _sh(script: str) -> List[str]:
    return ['bash', '-c', script]


class EteSyncInstaller:
    """Installs and updates EteSync inside an existing container."""

    def __init__(self, host: ProxmoxHost, image_tag: str = 'alpine'):
        self.host = host
        self.image_tag = image_tag

    def _exec(self, vmid: int, command: List[str]) -> str:
        return self.host.container_exec(vmid, command)

    @retry(max_attempts=10, delay=2.0, backoff=1.5, exceptions=(CommandError,))
    def wait_for_network(self, vmid: int) -> str:
        self._exec(vmid, ['getent', 'hosts', 'deb.debian.org'])
        return 'deb.debian.org resolvable'

    def install_docker(self, vmid: int) -> str:
        self._exec(vmid, _sh(
            f'apt-get update && {APT_ENV} apt-get install -y docker.io ca-certificates'
        ))
        return 'docker.io ca-certificates'

    def enable_docker(self, vmid: int) -> str:
        self._exec(vmid, ['systemctl', 'enable', '--now', 'docker'])
        return 'docker.service'

    def prepare_directories(self, vmid: int) -> str:
        self._exec(vmid, ['mkdir', '-p', DATA_DIR, STATIC_DIR])
        return f'{DATA_DIR} {STATIC_DIR}'

    @retry(
        max_attempts=3,
        delay=5,
        exceptions=(CommandError,),
        attempts_from=lambda: get_config().retry_attempts,
    )
    def pull_image(self, vmid: int) -> str:
        self._exec(vmid, ['docker', 'pull', f'{IMAGE}:{self.image_tag}'])
        return f'{IMAGE}:{self.image_tag}'

    def create_app_container(self, vmid: int) -> str:
        self._exec(vmid, docker_create_command(self.image_tag))
        return APP_CONTAINER

    def install_unit(self, vmid: int, scratch_dir: Path) -> str:
        unit = Path(scratch_dir) / f'{SERVICE}.service'
        unit.write_text(UNIT_FILE)
        self.host.container_push(vmid, unit, UNIT_PATH)
        return UNIT_PATH

    def enable_service(self, vmid: int) -> str:
        self._exec(vmid, _sh(f'systemctl daemon-reload && systemctl enable --now {SERVICE}'))
        return f'{SERVICE}.service'

    def upgrade_system(self, vmid: int) -> str:
        self._exec(vmid, _sh(f"apt-get update && {APT_ENV} apt-get -y upgrade"))
        return "packages upgraded"

    def cleanup(self, vmid: int) -> str:
        self._exec(vmid, _sh(
            f'{APT_ENV} apt-get -y autoremove && apt-get -y autoclean && apt-get -y clean'
        ))
        return 'apt caches cleaned'

    def install(self, vmid: int, state: ProvisionState, scratch_dir: Path) -> ProvisionState:
        """Run every install step, appending to ``state``.

        Raises:
            StepError: First failing required step
        """
        logger.info(f"Installing EteSync in container {vmid}")
        run_step(state, ContainerStep.WAIT_NETWORK, lambda: self.wait_for_network(vmid))
        run_step(state, ContainerStep.INSTALL_DOCKER, lambda: self.install_docker(vmid))
        run_step(state, ContainerStep.ENABLE_DOCKER, lambda: self.enable_docker(vmid))
        run_step(state, ContainerStep.PREPARE_DIRECTORIES, lambda: self.prepare_directories(vmid))
        run_step(state, ContainerStep.PULL_IMAGE, lambda: self.pull_image(vmid))
        run_step(state, ContainerStep.CREATE_APP_CONTAINER, lambda: self.create_app_container(vmid))
        run_step(state, ContainerStep.INSTALL_UNIT, lambda: self.install_unit(vmid, scratch_dir))
        run_step(state, ContainerStep.ENABLE_SERVICE, lambda: self.enable_service(vmid))
        best_effort(state, ContainerStep.CLEANUP, lambda: self.cleanup(vmid))
        logger.info(f"✓ EteSync installed in container {vmid}")
        return state

    def _has_docker(self, vmid: int) -> bool:
        try:
            self._exec(vmid, _sh('command -v docker'))
            return True
        except CommandError:
            return False

    def _restart_if_active(self, vmid: int) -> str:
        try:
            self._exec(vmid, ['systemctl', 'is-active', '--quiet', SERVICE])
        except CommandError:
            return f'{SERVICE} not active'
        self._exec(vmid, ['systemctl', 'restart', SERVICE])
        return f'{SERVICE} restarted'

    def update(self, vmid: int, state: Optional[ProvisionState] = None) -> ProvisionState:
        """Upgrade the container OS and refresh the EteSync image.

        An image pull failure is logged and the current image keeps running.

        Raises:
            StepError: The system upgrade or the service restart failed
        """
        state = state or ProvisionState(vmid=vmid)
        run_step(state, UpdateStep.UPGRADE_SYSTEM, lambda: self.upgrade_system(vmid))

        if self._has_docker(vmid):
            best_effort(state, UpdateStep.PULL_IMAGE, lambda: self.pull_image(vmid))
            run_step(state, UpdateStep.RESTART_SERVICE, lambda: self._restart_if_active(vmid))
        else:
            logger.warning("Docker not found, skipping EteSync image update")
            skip_step(state, UpdateStep.PULL_IMAGE, "docker not installed")

        best_effort(state, UpdateStep.CLEANUP, lambda: self.cleanup(vmid))
        logger.info(f"✓ Container {vmid} updated")
        return state
