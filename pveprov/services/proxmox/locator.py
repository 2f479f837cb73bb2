"""Identifier allocation and storage selection."""
from typing import Callable, List, Optional, Sequence

from pveprov.core.errors import CommandError, ConflictError
from pveprov.core.logger import get_logger
from pveprov.models.request import LocatedTarget, ProvisionRequest, ResourceKind, StorageTarget
from pveprov.services.proxmox.host import ProxmoxHost

logger = get_logger(__name__)

DEFAULT_STORAGE = 'local-lvm'

# Storage content type each resource kind needs
CONTENT_TYPES = {
    ResourceKind.VM: 'images',
    ResourceKind.CONTAINER: 'rootdir',
}

# (prompt, choices, default) -> chosen storage name
StorageChooser = Callable[[str, Sequence[str], str], str]


class ResourceLocator:
    """Narrows a request to a concrete id and storage backend."""

    def __init__(
        self,
        host: ProxmoxHost,
        preferred_storage: str = DEFAULT_STORAGE,
        chooser: Optional[StorageChooser] = None,
    ):
        self.host = host
        self.preferred_storage = preferred_storage
        self.chooser = chooser

    def id_in_use(self, vmid: int) -> bool:
        return self.host.resource_exists(vmid)

    def allocate_id(self, requested: Optional[int]) -> int:
        if requested is not None:
            if self.id_in_use(requested):
                raise ConflictError(f"identifier {requested} in use")
            return requested

        try:
            vmid = self.host.next_id()
        except CommandError as e:
            raise ConflictError(f"could not allocate an identifier: {e}") from e
        logger.info(f"Auto-assigned VMID: {vmid}")
        return vmid

    def eligible_storage(self, kind: ResourceKind) -> List[StorageTarget]:
        content = CONTENT_TYPES[kind]
        try:
            return self.host.list_storage(content)
        except CommandError as e:
            raise ConflictError(f"could not list storage for '{content}': {e}") from e

    def select_storage(self, request: ProvisionRequest) -> StorageTarget:
        targets = self.eligible_storage(request.kind)
        if not targets:
            raise ConflictError("no eligible storage")

        by_name = {t.name: t for t in targets}

        if request.storage:
            if request.storage not in by_name:
                raise ConflictError(
                    f"storage '{request.storage}' is not an active backend for "
                    f"{CONTENT_TYPES[request.kind]} (eligible: {', '.join(by_name)})"
                )
            return by_name[request.storage]

        default = self.preferred_storage if self.preferred_storage in by_name else targets[0].name
        if self.chooser is not None and len(targets) > 1:
            while True:
                chosen = self.chooser("Select storage", list(by_name), default).strip()
                if chosen in by_name:
                    return by_name[chosen]
                logger.warning(f"Unknown storage '{chosen}', choose one of: {', '.join(by_name)}")
        return by_name[default]

    def locate(self, request: ProvisionRequest) -> LocatedTarget:
        """Pick a conflict-free id and an eligible storage backend.

        Raises:
            ConflictError: Id already in use, allocator failure, or no eligible storage
        """
        vmid = self.allocate_id(request.vmid)
        storage = self.select_storage(request)
        logger.info(f"Target: {vmid} on {storage.name} (type: {storage.type}, {storage.kind.value})")
        return LocatedTarget(vmid=vmid, storage=storage)
