"""Progress log of a provisioning run."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class StepStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    DEGRADED = "degraded"  # best-effort step failed; run continued


class VMStep(str, Enum):
    CREATE = "create"
    ATTACH_FIRMWARE = "attach-firmware"
    IMPORT_DISK = "import-disk"
    RESOLVE_VOLUME = "resolve-volume"
    ATTACH_DISK = "attach-disk"
    RESIZE_DISK = "resize-disk"
    SET_BOOT_ORDER = "set-boot-order"
    ENABLE_GUEST_AGENT = "enable-guest-agent"
    START = "start"


class ContainerStep(str, Enum):
    ENSURE_TEMPLATE = "ensure-template"
    CREATE = "create"
    START = "start"
    WAIT_NETWORK = "wait-network"
    INSTALL_DOCKER = "install-docker"
    ENABLE_DOCKER = "enable-docker"
    PREPARE_DIRECTORIES = "prepare-directories"
    PULL_IMAGE = "pull-image"
    CREATE_APP_CONTAINER = "create-app-container"
    INSTALL_UNIT = "install-unit"
    ENABLE_SERVICE = "enable-service"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class StepRecord:
    step: str
    status: StepStatus
    detail: str = ""


@dataclass
class ProvisionState:
    """Append-only record of what a run has done so far.

    Used for reporting only; nothing is rolled back on failure.
    """
    vmid: Optional[int] = None
    storage: Optional[str] = None
    volume: Optional[str] = None
    records: List[StepRecord] = field(default_factory=list)

    def record(self, step, status: StepStatus = StepStatus.COMPLETED, detail: str = "") -> None:
        name = step.value if isinstance(step, Enum) else str(step)
        self.records.append(StepRecord(name, StepStatus(status), detail))

    def _with_status(self, status: StepStatus) -> List[str]:
        return [r.step for r in self.records if r.status is status]

    @property
    def completed_steps(self) -> List[str]:
        return self._with_status(StepStatus.COMPLETED)

    @property
    def skipped_steps(self) -> List[str]:
        return self._with_status(StepStatus.SKIPPED)

    @property
    def degraded_steps(self) -> List[str]:
        return self._with_status(StepStatus.DEGRADED)

    @property
    def is_empty(self) -> bool:
        return not self.records

    def summary(self) -> str:
        if not self.records:
            return "no steps completed"
        return ", ".join(f"{r.step}={r.status.value}" for r in self.records)


class UpdateStep(str, Enum):
    UPGRADE_SYSTEM = "upgrade-system"
    PULL_IMAGE = "pull-image"
    RESTART_SERVICE = "restart-service"
    CLEANUP = "cleanup"
