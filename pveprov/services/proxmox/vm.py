"""Ordered VM provisioning with ``qm``.

Steps run strictly in order; each one must succeed before the next starts.
The first failing step raises StepError carrying the ProvisionState built so
far. Already-created resources are left in place for inspection.
"""
from pathlib import Path
from typing import List, Optional

from pveprov.core.errors import ConflictError, ProvisionError
from pveprov.core.logger import get_logger
from pveprov.models.request import LocatedTarget, ProvisionRequest, StorageKind, StorageTarget
from pveprov.models.state import ProvisionState, VMStep
from pveprov.services.proxmox.host import ProxmoxHost
from pveprov.services.proxmox.steps import best_effort, run_step, skip_step
from pveprov.services.proxmox.volumes import resolve_imported_volume, slot_holding

logger = get_logger(__name__)

BOOT_DISK = 'scsi0'


def disk_options(volume: str, storage: StorageTarget, cache: Optional[str]) -> str:
    """Drive string for the boot disk.

    Network block storage defaults to writeback caching when no cache mode
    was requested; other kinds leave the Proxmox default.
    """
    options = [volume, 'discard=on', 'ssd=1']
    if not cache and storage.kind is StorageKind.NETWORK:
        cache = 'writeback'
    if cache:
        options.append(f'cache={cache}')
    return ','.join(options)


def vm_description(request: ProvisionRequest) -> str:
    agent = 'yes' if request.guest_agent else 'no'
    return (
        f"Talos OS VM ({request.version})\n"
        f"- Built via Talos Image Factory\n"
        f"- QEMU Guest Agent baked: {agent}\n"
        f"Next steps:\n"
        f"- Boot VM and apply Talos config with talosctl (apply-config/bootstrap)."
    )


class VMProvisioner:
    """Creates a VM from an imported disk image."""

    def __init__(self, host: ProxmoxHost):
        self.host = host

    def _create(self, request: ProvisionRequest, vmid: int) -> str:
        # The id may have been taken since it was allocated
        if self.host.resource_exists(vmid):
            raise ConflictError(f"identifier {vmid} in use")

        cmd: List = [
            'create', vmid,
            '--name', request.name,
            '--memory', request.memory,
            '--cores', request.cores,
            '--cpu', request.cpu_type,
            '--net0', request.network.vm_net0(),
            '--bios', 'ovmf' if request.uefi else 'seabios',
        ]
        if request.machine == 'q35':
            cmd.extend(['--machine', 'q35'])
        cmd.extend([
            '--ostype', 'l26',
            '--scsihw', 'virtio-scsi-pci',
            '--serial0', 'socket',
            '--vga', 'serial0',
            '--tablet', '0',
            '--localtime', '1',
            '--onboot', '1',
            '--agent', '0',
            '--description', vm_description(request),
        ])
        if request.tags:
            cmd.extend(['--tags', ';'.join(request.tags)])

        self.host.qm(*cmd)
        return f"{vmid} ({request.name})"

    def _attach_firmware(self, vmid: int, storage: StorageTarget) -> str:
        self.host.qm('set', vmid, '--efidisk0', f'{storage.name}:0,efitype=4m,pre-enrolled-keys=0')
        return 'efidisk0'

    def _resolve_volume(self, vmid: int, import_output: str, state: ProvisionState) -> str:
        resolution = resolve_imported_volume(import_output, lambda: self.host.vm_config(vmid))
        if not resolution.found:
            raise ProvisionError("import produced no discoverable volume")
        state.volume = resolution.volume
        logger.info(f"Imported volume: {resolution.volume} ({resolution.outcome.value})")
        return f"{resolution.volume} ({resolution.outcome.value})"

    def _attach_disk(self, request: ProvisionRequest, vmid: int, storage: StorageTarget, volume: str) -> str:
        self.host.qm('set', vmid, f'--{BOOT_DISK}', disk_options(volume, storage, request.disk_cache))
        leftover = slot_holding(self.host.vm_config(vmid), volume)
        if leftover:
            self.host.qm('set', vmid, '--delete', leftover)
        return f"{BOOT_DISK}={volume}"

    def _import_disk(self, vmid: int, storage: StorageTarget, artifact: Path, outputs: dict) -> str:
        outputs['import'] = self.host.import_disk(
            vmid, artifact, storage.name, raw=storage.needs_raw_import
        )
        return f"{artifact.name} -> {storage.name}" + (" (raw)" if storage.needs_raw_import else "")

    def _resize(self, vmid: int, size: int) -> str:
        self.host.qm('resize', vmid, BOOT_DISK, f'{size}G')
        return f'{size}G'

    def _set_boot_order(self, vmid: int) -> str:
        self.host.qm('set', vmid, '--boot', f'order={BOOT_DISK}')
        return f'order={BOOT_DISK}'

    def _enable_guest_agent(self, vmid: int) -> str:
        self.host.qm('set', vmid, '--agent', 'enabled=1')
        return 'enabled=1'

    def _start(self, vmid: int) -> str:
        self.host.qm('start', vmid)
        return 'started'

    def provision(
        self,
        request: ProvisionRequest,
        target: LocatedTarget,
        artifact: Path,
        state: Optional[ProvisionState] = None,
    ) -> ProvisionState:
        """Run all VM steps.

        Args:
            request: Resolved request
            target: Id and storage from the locator
            artifact: Local path of the downloaded disk image
            state: State to append to (a new one is created when omitted)

        Returns:
            ProvisionState with one record per step

        Raises:
            StepError: First failing step, with the state accumulated so far
        """
        vmid, storage = target.vmid, target.storage
        state = state or ProvisionState(vmid=vmid, storage=storage.name)
        outputs = {}

        run_step(state, VMStep.CREATE, lambda: self._create(request, vmid))

        if request.uefi:
            run_step(state, VMStep.ATTACH_FIRMWARE, lambda: self._attach_firmware(vmid, storage))
        else:
            skip_step(state, VMStep.ATTACH_FIRMWARE, 'legacy BIOS')

        run_step(state, VMStep.IMPORT_DISK, lambda: self._import_disk(vmid, storage, artifact, outputs))
        run_step(
            state, VMStep.RESOLVE_VOLUME,
            lambda: self._resolve_volume(vmid, outputs.get('import', ''), state),
        )
        run_step(
            state, VMStep.ATTACH_DISK,
            lambda: self._attach_disk(request, vmid, storage, state.volume),
        )
        best_effort(state, VMStep.RESIZE_DISK, lambda: self._resize(vmid, request.disk_size))
        run_step(state, VMStep.SET_BOOT_ORDER, lambda: self._set_boot_order(vmid))

        if request.guest_agent:
            best_effort(state, VMStep.ENABLE_GUEST_AGENT, lambda: self._enable_guest_agent(vmid))
        else:
            skip_step(state, VMStep.ENABLE_GUEST_AGENT, 'extension not requested')

        if request.start:
            run_step(state, VMStep.START, lambda: self._start(vmid))
        else:
            skip_step(state, VMStep.START, 'start not requested')

        logger.info(f"✓ VM {vmid} provisioned")
        return state
