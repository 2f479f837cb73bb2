"""Finding the volume produced by ``qm importdisk``.

The import command usually reports ``Successfully imported disk as
'unused0:local-lvm:vm-100-disk-1'``, but not every Proxmox release or storage
plugin prints it. When it does not, the VM configuration is inspected for an
``unusedN`` slot instead.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

IMPORT_OUTPUT = re.compile(r"imported disk as '(?:(unused\d+):)?([^']+)'")
UNUSED_SLOT = re.compile(r'^unused(\d+)$')


class Resolution(str, Enum):
    FOUND_DIRECT = "found-direct"
    FOUND_FALLBACK = "found-fallback"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class VolumeResolution:
    outcome: Resolution
    volume: Optional[str] = None
    slot: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.outcome is not Resolution.NOT_FOUND


def from_import_output(output: str) -> VolumeResolution:
    match = IMPORT_OUTPUT.search(output or "")
    if not match:
        return VolumeResolution(Resolution.NOT_FOUND)
    slot, volume = match.group(1), match.group(2).strip()
    if not volume:
        return VolumeResolution(Resolution.NOT_FOUND)
    return VolumeResolution(Resolution.FOUND_DIRECT, volume=volume, slot=slot)


def unused_slots(config: Dict[str, str]) -> Dict[str, str]:
    """``unusedN`` slots of a VM config, lowest index first."""
    indexed = []
    for key, value in config.items():
        match = UNUSED_SLOT.match(key)
        if match and value:
            indexed.append((int(match.group(1)), key, value))
    return {key: value for _, key, value in sorted(indexed)}


def from_config(config: Dict[str, str]) -> VolumeResolution:
    for slot, volume in unused_slots(config).items():
        return VolumeResolution(Resolution.FOUND_FALLBACK, volume=volume, slot=slot)
    return VolumeResolution(Resolution.NOT_FOUND)


def resolve_imported_volume(import_output: str, load_config) -> VolumeResolution:
    """Resolve the imported volume, consulting ``load_config()`` only if needed."""
    direct = from_import_output(import_output)
    if direct.found:
        return direct
    return from_config(load_config())


def slot_holding(config: Dict[str, str], volume: str) -> Optional[str]:
    """Name of the unused slot that still references ``volume``, if any."""
    for slot, value in unused_slots(config).items():
        if value.split(',', 1)[0] == volume:
            return slot
    return None
