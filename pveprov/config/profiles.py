"""Field definitions and defaults for each provisioning profile."""
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from pveprov.models.request import NetworkConfig, ProvisionRequest, ResourceKind

TRUE_WORDS = {'yes', 'y', 'true', '1', 'on'}
FALSE_WORDS = {'no', 'n', 'false', '0', 'off'}
MAC_PATTERN = re.compile(r'^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$')
NAME_PATTERN = re.compile(r'^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?$')


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_positive_int(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected a positive integer, got {value!r}")
    text = str(value).strip()
    if not text.isdigit() or int(text) <= 0:
        raise ValueError(f"expected a positive integer, got {value!r}")
    return int(text)


def parse_vmid(value) -> Optional[int]:
    """Blank or 'auto' means allocate; otherwise a positive integer (>= 100)."""
    if _blank(value) or str(value).strip().lower() == 'auto':
        return None
    vmid = parse_positive_int(value)
    if vmid < 100:
        raise ValueError(f"ids below 100 are reserved by Proxmox, got {vmid}")
    return vmid


def parse_disk_size(value) -> int:
    """GiB as '20', 20 or '20G'."""
    text = str(value).strip()
    if text[-1:].upper() == 'G':
        text = text[:-1]
    return parse_positive_int(text)


def optional_int(low: int, high: int) -> Callable[[Any], Optional[int]]:
    """Parser for VLAN/MTU style values where 0 or blank means unset."""
    def parse(value) -> Optional[int]:
        if _blank(value) or str(value).strip() == '0':
            return None
        number = parse_positive_int(value)
        if not low <= number <= high:
            raise ValueError(f"must be between {low} and {high}, got {number}")
        return number
    return parse


def parse_yes_no(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    raise ValueError(f"expected yes or no, got {value!r}")


def parse_non_empty(value) -> str:
    if _blank(value):
        raise ValueError("must not be empty")
    return str(value).strip()


def parse_hostname(value) -> str:
    name = parse_non_empty(value)
    if not NAME_PATTERN.match(name):
        raise ValueError(f"'{name}' is not a valid hostname")
    return name


def parse_optional_text(value) -> Optional[str]:
    return None if _blank(value) else str(value).strip()


def parse_mac(value) -> Optional[str]:
    if _blank(value):
        return None
    mac = str(value).strip().upper()
    if not MAC_PATTERN.match(mac):
        raise ValueError(f"'{value}' is not a MAC address")
    return mac


def choice(*options: str) -> Callable[[Any], str]:
    def parse(value) -> str:
        text = str(value).strip()
        if text not in options:
            raise ValueError(f"expected one of {', '.join(options)}, got {value!r}")
        return text
    return parse


def parse_disk_cache(value) -> Optional[str]:
    """Cache mode for the boot disk; blank or 'default' leaves it unset."""
    if _blank(value) or str(value).strip() == 'default':
        return None
    return choice(*DISK_CACHES[1:])(value)


@dataclass(frozen=True)
class FieldSpec:
    """One resolvable parameter."""
    name: str
    label: str
    parse: Callable[[Any], Any]
    choices: Tuple[str, ...] = ()
    prompt: bool = True


@dataclass(frozen=True)
class Profile:
    name: str
    kind: ResourceKind
    fields: Tuple[FieldSpec, ...]
    defaults: Dict[str, Any] = field(default_factory=dict)
    tags: Tuple[str, ...] = ()

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def build(self, values: Dict[str, Any]) -> ProvisionRequest:
        merged = {**self.defaults, **values}
        network = NetworkConfig(
            bridge=merged['bridge'],
            vlan=merged.get('vlan'),
            mtu=merged.get('mtu'),
            mac=merged.get('mac'),
        )
        return ProvisionRequest(
            kind=self.kind,
            vmid=merged.get('vmid'),
            name=merged['name'],
            cores=merged['cores'],
            memory=merged['memory'],
            disk_size=merged['disk_size'],
            version=merged['version'],
            network=network,
            storage=merged.get('storage'),
            guest_agent=merged.get('guest_agent', False),
            start=merged.get('start', True),
            unprivileged=merged.get('unprivileged', True),
            machine=merged.get('machine', 'i440fx'),
            cpu_type=merged.get('cpu_type', 'kvm64'),
            disk_cache=merged.get('disk_cache'),
            template=merged.get('template'),
            descriptor=merged.get('descriptor'),
            tags=self.tags,
        )


YES_NO = ('yes', 'no')
DISK_CACHES = ('default', 'none', 'writethrough', 'writeback', 'directsync', 'unsafe')

VMID_FIELD = FieldSpec('vmid', 'Virtual machine ID (blank = next free)', parse_vmid)
NETWORK_FIELDS = (
    FieldSpec('bridge', 'Bridge', parse_non_empty),
    FieldSpec('mac', 'MAC address (blank = generated)', parse_mac),
    FieldSpec('vlan', 'VLAN tag (blank = default)', optional_int(1, 4094)),
    FieldSpec('mtu', 'MTU (blank = default)', optional_int(576, 65520)),
)

TALOS = Profile(
    name='talos',
    kind=ResourceKind.VM,
    fields=(
        VMID_FIELD,
        FieldSpec('machine', 'Machine type', choice('i440fx', 'q35'), choices=('i440fx', 'q35')),
        FieldSpec('disk_size', 'Disk size in GiB', parse_disk_size),
        FieldSpec('disk_cache', 'Disk cache', parse_disk_cache, choices=DISK_CACHES),
        FieldSpec('name', 'Hostname', parse_hostname),
        FieldSpec('cpu_type', 'CPU model', choice('kvm64', 'host'), choices=('kvm64', 'host')),
        FieldSpec('cores', 'CPU cores', parse_positive_int),
        FieldSpec('memory', 'RAM in MiB', parse_positive_int),
        *NETWORK_FIELDS,
        FieldSpec(
            'guest_agent', 'Include Talos extension siderolabs/qemu-guest-agent?',
            parse_yes_no, choices=YES_NO,
        ),
        FieldSpec('version', 'Talos version tag (e.g. v1.9.5)', parse_non_empty),
        FieldSpec('start', 'Start VM when completed?', parse_yes_no, choices=YES_NO),
        FieldSpec('storage', 'Storage', parse_optional_text, prompt=False),
        FieldSpec('descriptor', 'Image Factory schematic ID', parse_optional_text, prompt=False),
    ),
    defaults={
        'vmid': None,
        'machine': 'i440fx',
        'disk_size': 20,
        'disk_cache': 'none',
        'name': 'talos',
        'cpu_type': 'kvm64',
        'cores': 2,
        'memory': 2048,
        'bridge': 'vmbr0',
        'mac': None,
        'vlan': None,
        'mtu': None,
        'guest_agent': True,
        'version': None,  # looked up from the latest Talos release
        'start': True,
        'storage': None,
        'descriptor': None,
    },
    tags=('talos',),
)

ETESYNC = Profile(
    name='etesync',
    kind=ResourceKind.CONTAINER,
    fields=(
        VMID_FIELD,
        FieldSpec('name', 'Hostname', parse_hostname),
        FieldSpec('cores', 'CPU cores', parse_positive_int),
        FieldSpec('memory', 'RAM in MiB', parse_positive_int),
        FieldSpec('disk_size', 'Disk size in GiB', parse_disk_size),
        *NETWORK_FIELDS,
        FieldSpec('unprivileged', 'Unprivileged container?', parse_yes_no, choices=YES_NO),
        FieldSpec('version', 'EteSync image tag', parse_non_empty),
        FieldSpec('template', 'Container template', parse_non_empty, prompt=False),
        FieldSpec('storage', 'Storage', parse_optional_text, prompt=False),
    ),
    defaults={
        'vmid': None,
        'name': 'etesync',
        'cores': 2,
        'memory': 1024,
        'disk_size': 8,
        'bridge': 'vmbr0',
        'mac': None,
        'vlan': None,
        'mtu': None,
        'unprivileged': True,
        'version': 'alpine',
        'template': 'debian-12-standard',
        'storage': None,
        'start': True,
        'disk_cache': None,
    },
    tags=('calendar',),
)

PROFILES = {
    TALOS.name: TALOS,
    ETESYNC.name: ETESYNC,
}
