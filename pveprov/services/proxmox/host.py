"""Thin wrapper around the Proxmox VE command line tools.

Every call goes through ``ProxmoxHost.run`` so that timeouts, mock mode and
error reporting behave the same for ``qm``, ``pct``, ``pvesh``, ``pvesm`` and
``pveam``.
"""
import re
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pveprov.core.config import get_config
from pveprov.core.errors import CommandError
from pveprov.core.logger import get_logger
from pveprov.models.request import StorageTarget

logger = get_logger(__name__)


def parse_config_lines(output: str) -> Dict[str, str]:
    """Parse ``key: value`` lines from ``qm config`` / ``pct config``."""
    config = {}
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or ':' not in line:
            continue
        key, value = line.split(':', 1)
        config[key.strip()] = value.strip()
    return config


def parse_storage_status(output: str) -> List[StorageTarget]:
    """Parse ``pvesm status`` output, keeping active backends only.

    Example output::

        Name             Type     Status           Total            Used       Available        %
        local             dir     active        98497780        11178984        82269248   11.35%
        local-lvm     lvmthin     active       832888832        21546188       811342643    2.59%
    """
    targets = []
    for line in output.strip().splitlines()[1:]:
        parts = line.split()
        if len(parts) < 3:
            continue
        name, storage_type, status = parts[0], parts[1], parts[2]
        if status != 'active':
            continue
        targets.append(StorageTarget.from_type(name, storage_type))
    return targets


class ProxmoxHost:
    """Runs Proxmox CLI commands on the local node."""

    def __init__(self, mock: bool = False):
        self.mock = mock
        self.config = get_config()

    def run(
        self,
        cmd: Sequence[str],
        timeout: Optional[int] = None,
        mock_output: str = "",
    ) -> str:
        """Run a host command and return its stdout.

        Raises:
            CommandError: On non-zero exit, timeout, or missing executable
        """
        cmd = [str(part) for part in cmd]
        command_str = shlex.join(cmd)

        if self.mock:
            logger.info(f"MOCK: Would run: {command_str}")
            return mock_output

        logger.debug(f"Running: {command_str}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout or self.config.command_timeout,
            )
        except subprocess.CalledProcessError as e:
            raise CommandError(cmd, e.returncode, e.stderr) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(cmd, timed_out=True) from e
        except OSError as e:
            raise CommandError(cmd, stderr=str(e)) from e

        if result.stdout:
            logger.debug(result.stdout.rstrip())
        return result.stdout

    def succeeds(self, cmd: Sequence[str]) -> bool:
        """Return True when the command exits zero."""
        try:
            self.run(cmd)
            return True
        except CommandError:
            return False

    # Identifiers

    def next_id(self) -> int:
        output = self.run(['pvesh', 'get', '/cluster/nextid'], mock_output="100\n")
        value = output.strip().strip('"')
        if not value.isdigit():
            raise CommandError(['pvesh', 'get', '/cluster/nextid'], stderr=f"unexpected output {value!r}")
        return int(value)

    def resource_exists(self, vmid: int) -> bool:
        """True if a VM or a container already uses this id."""
        if self.mock:
            logger.info(f"MOCK: Would check whether {vmid} is in use")
            return False
        return self.succeeds(['qm', 'status', vmid]) or self.succeeds(['pct', 'status', vmid])

    # Storage

    def list_storage(self, content: str) -> List[StorageTarget]:
        output = self.run(
            ['pvesm', 'status', '-content', content],
            mock_output=(
                "Name Type Status Total Used Available %\n"
                "local-lvm lvmthin active 1000 10 990 1.00%\n"
            ),
        )
        return parse_storage_status(output)

    # Virtual machines

    def qm(self, *args, timeout: Optional[int] = None, mock_output: str = "") -> str:
        return self.run(['qm', *args], timeout=timeout, mock_output=mock_output)

    def import_disk(self, vmid: int, image: Path, storage: str, raw: bool = False) -> str:
        cmd = ['importdisk', vmid, str(image), storage]
        if raw:
            cmd.extend(['--format', 'raw'])
        return self.qm(
            *cmd,
            timeout=self.config.import_timeout,
            mock_output=f"Successfully imported disk as 'unused0:{storage}:vm-{vmid}-disk-1'\n",
        )

    def vm_config(self, vmid: int) -> Dict[str, str]:
        return parse_config_lines(self.qm('config', vmid))

    # Containers

    def pct(self, *args, timeout: Optional[int] = None, mock_output: str = "") -> str:
        return self.run(['pct', *args], timeout=timeout, mock_output=mock_output)

    def container_exec(self, vmid: int, command: Sequence[str], timeout: Optional[int] = None) -> str:
        return self.pct(
            'exec', vmid, '--', *command,
            timeout=timeout or self.config.exec_timeout,
        )

    def container_push(self, vmid: int, source: Path, destination: str, perms: str = "0644") -> str:
        return self.pct('push', vmid, str(source), destination, '--perms', perms)

    def container_ip(self, vmid: int) -> Optional[str]:
        """First IPv4 address reported inside the container, if any."""
        output = self.container_exec(vmid, ['hostname', '-I'], timeout=self.config.command_timeout)
        match = re.search(r'\b(\d{1,3}(?:\.\d{1,3}){3})\b', output)
        return match.group(1) if match else None

    # Templates

    def pveam(self, *args, timeout: Optional[int] = None, mock_output: str = "") -> str:
        return self.run(['pveam', *args], timeout=timeout, mock_output=mock_output)
