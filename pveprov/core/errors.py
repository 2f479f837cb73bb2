"""Error types raised by provisioning runs."""
from typing import List, Optional, Sequence


class ProvisionError(Exception):
    """Base class for fatal provisioning failures."""


class ValidationError(ProvisionError):
    """A resolved parameter is missing, malformed or conflicting."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class ConflictError(ProvisionError):
    """The requested identifier or storage is unavailable on the host."""


class FetchError(ProvisionError):
    """Descriptor resolution or artifact download failed."""


class HostCheckError(ProvisionError):
    """The machine is not a supported Proxmox VE node."""


class CommandError(Exception):
    """A host command exited non-zero or timed out."""

    def __init__(
        self,
        cmd: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
    ):
        self.cmd: List[str] = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        self.timed_out = timed_out

        command = " ".join(self.cmd)
        if timed_out:
            message = f"'{command}' timed out"
        else:
            message = f"'{command}' exited with code {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class StepError(ProvisionError):
    """A named provisioning step failed.

    Carries the accumulated ProvisionState so callers can tell exactly how far
    the run got. Earlier steps are not rolled back.
    """

    def __init__(self, step: str, cause: Exception, state):
        self.step = step
        self.cause = cause
        self.state = state
        target = f" on {state.vmid}" if state is not None and state.vmid else ""
        super().__init__(f"step '{step}' failed{target}: {cause}")


class UserCancelled(Exception):
    """The operator backed out of an interactive prompt."""
