"""Data models for pveprov."""
from pveprov.models.request import (
    LocatedTarget,
    NetworkConfig,
    ProvisionRequest,
    ResourceKind,
    StorageKind,
    StorageTarget,
    storage_kind_for,
)
from pveprov.models.state import (
    ContainerStep,
    ProvisionState,
    StepRecord,
    StepStatus,
    UpdateStep,
    VMStep,
)

__all__ = [
    'ContainerStep',
    'LocatedTarget',
    'NetworkConfig',
    'ProvisionRequest',
    'ProvisionState',
    'ResourceKind',
    'StepRecord',
    'StepStatus',
    'StorageKind',
    'StorageTarget',
    'UpdateStep',
    'VMStep',
    'storage_kind_for',
]
