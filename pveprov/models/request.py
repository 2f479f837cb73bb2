"""Resolved provisioning request and storage models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    VM = "vm"
    CONTAINER = "container"


class StorageKind(str, Enum):
    """How a storage backend stores volumes; drives disk import flags."""
    BLOCK = "block"
    FILE = "file"
    NETWORK = "network"


# pvesm storage type -> kind
STORAGE_KINDS = {
    "lvm": StorageKind.BLOCK,
    "lvmthin": StorageKind.BLOCK,
    "zfspool": StorageKind.BLOCK,
    "dir": StorageKind.FILE,
    "btrfs": StorageKind.FILE,
    "nfs": StorageKind.FILE,
    "cifs": StorageKind.FILE,
    "cephfs": StorageKind.FILE,
    "glusterfs": StorageKind.FILE,
    "rbd": StorageKind.NETWORK,
    "iscsi": StorageKind.NETWORK,
    "iscsidirect": StorageKind.NETWORK,
}


def storage_kind_for(storage_type: str) -> StorageKind:
    """Classify a pvesm storage type. Unknown types are treated as file-backed."""
    return STORAGE_KINDS.get((storage_type or "").lower(), StorageKind.FILE)


@dataclass(frozen=True)
class StorageTarget:
    """An active storage backend on the host."""
    name: str
    type: str
    kind: StorageKind

    @classmethod
    def from_type(cls, name: str, storage_type: str) -> "StorageTarget":
        return cls(name=name, type=storage_type, kind=storage_kind_for(storage_type))

    @property
    def needs_raw_import(self) -> bool:
        """File-backed storage must be told to store imported disks as raw."""
        return self.kind is StorageKind.FILE


@dataclass(frozen=True)
class NetworkConfig:
    """First NIC of the resource."""
    bridge: str = "vmbr0"
    vlan: Optional[int] = None
    mtu: Optional[int] = None
    mac: Optional[str] = None  # None lets Proxmox generate one

    def vm_net0(self) -> str:
        parts = ["virtio", f"bridge={self.bridge}"]
        if self.mac:
            parts.append(f"macaddr={self.mac}")
        if self.vlan:
            parts.append(f"tag={self.vlan}")
        if self.mtu:
            parts.append(f"mtu={self.mtu}")
        return ",".join(parts)

    def container_net0(self) -> str:
        parts = ["name=eth0", f"bridge={self.bridge}", "ip=dhcp"]
        if self.mac:
            parts.append(f"hwaddr={self.mac}")
        if self.vlan:
            parts.append(f"tag={self.vlan}")
        if self.mtu:
            parts.append(f"mtu={self.mtu}")
        return ",".join(parts)


@dataclass(frozen=True)
class ProvisionRequest:
    """Everything a run needs, fixed once the resolver returns it.

    ``vmid`` of None means "allocate the next free id". ``storage`` of None
    means "pick automatically". ``descriptor`` is a known Image Factory
    schematic id that skips schematic submission.
    """
    kind: ResourceKind
    name: str
    cores: int
    memory: int  # MiB
    disk_size: int  # GiB
    version: str
    network: NetworkConfig = field(default_factory=NetworkConfig)
    vmid: Optional[int] = None
    storage: Optional[str] = None
    guest_agent: bool = False
    start: bool = True
    unprivileged: bool = True
    machine: str = "i440fx"
    cpu_type: str = "kvm64"
    disk_cache: Optional[str] = "none"
    template: Optional[str] = None
    descriptor: Optional[str] = None
    tags: tuple = ()

    @property
    def uefi(self) -> bool:
        """Talos VMs boot with OVMF and need an EFI vars disk."""
        return self.kind is ResourceKind.VM


@dataclass(frozen=True)
class LocatedTarget:
    """Concrete, conflict-free placement chosen by the locator."""
    vmid: int
    storage: StorageTarget
