"""Pre-flight checks that the tool runs on a supported Proxmox VE node."""
import os
import re
import subprocess
from typing import Callable, Dict, Optional, Tuple

from pveprov.core.errors import HostCheckError, UserCancelled
from pveprov.core.logger import get_logger

logger = get_logger(__name__)

# major version -> (lowest minor, highest minor)
SUPPORTED_PVE: Dict[int, Tuple[int, int]] = {
    8: (0, 9),
    9: (0, 1),
}


def parse_pve_version(output: str) -> Optional[Tuple[int, int]]:
    """Extract (major, minor) from ``pveversion`` output.

    ``pve-manager/8.2.4/faa83925c9641325 (running kernel: 6.8.8-2-pve)``
    yields ``(8, 2)``.
    """
    match = re.search(r"pve-manager/(\d+)\.(\d+)", output)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_supported_pve(version: Tuple[int, int]) -> bool:
    major, minor = version
    bounds = SUPPORTED_PVE.get(major)
    return bounds is not None and bounds[0] <= minor <= bounds[1]


class HostChecks:
    """Runs the root, PVE version, architecture and SSH checks."""

    def __init__(self, mock: bool = False, environ: Optional[Dict[str, str]] = None):
        self.mock = mock
        self.environ = environ if environ is not None else os.environ

    def _output(self, cmd) -> str:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as e:
            raise HostCheckError(f"'{' '.join(cmd)}' failed: {e}") from e
        return result.stdout.strip()

    def check_root(self) -> None:
        if os.geteuid() != 0:
            raise HostCheckError("Please run this tool as root.")
        if self.environ.get("SUDO_USER"):
            raise HostCheckError("Please run this tool as root (no sudo wrapper).")

    def check_pve_version(self) -> Tuple[int, int]:
        output = self._output(["pveversion"])
        version = parse_pve_version(output)
        if version is None:
            raise HostCheckError(f"Could not parse Proxmox VE version from: {output!r}")
        if not is_supported_pve(version):
            supported = ", ".join(f"{m}.{lo}-{m}.{hi}" for m, (lo, hi) in SUPPORTED_PVE.items())
            raise HostCheckError(
                f"Unsupported Proxmox VE {version[0]}.{version[1]} (supported: {supported})"
            )
        return version

    def check_architecture(self) -> None:
        arch = self._output(["dpkg", "--print-architecture"])
        if arch != "amd64":
            raise HostCheckError(f"This tool is amd64-only (found {arch}).")

    def over_ssh(self) -> bool:
        return bool(self.environ.get("SSH_CLIENT"))

    def run_all(self, confirm_ssh: Optional[Callable[[str], bool]] = None) -> None:
        """Run every check, raising HostCheckError on the first failure.

        Args:
            confirm_ssh: Called with a message when running over SSH; returning
                False raises UserCancelled. Not called in mock mode.
        """
        if self.mock:
            logger.info("MOCK: Skipping host environment checks")
            return

        self.check_root()
        major, minor = self.check_pve_version()
        self.check_architecture()
        logger.debug(f"Host is Proxmox VE {major}.{minor} on amd64")

        if self.over_ssh() and confirm_ssh is not None:
            message = (
                "SSH session detected. Running from the Proxmox shell is recommended "
                "because prompts may misbehave over SSH. Continue?"
            )
            if not confirm_ssh(message):
                raise UserCancelled("run from the Proxmox shell instead of SSH")
