"""Load parameter overrides from a YAML file and the environment.

Example ``pveprov.yml``::

    talos:
      cores: 4
      memory: 4096
      version: v1.9.5
      storage: local-lvm
    etesync:
      vmid: 210
      unprivileged: yes

Environment variables ``PVEPROV_<PROFILE>_<FIELD>`` (for example
``PVEPROV_TALOS_CORES=4``) take precedence over the file.
"""
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from pveprov.config.profiles import PROFILES
from pveprov.core.errors import ValidationError
from pveprov.core.logger import get_logger

logger = get_logger(__name__)

Scalar = Union[int, str]
Flag = Union[bool, str]


class NetworkOverrides(BaseModel):
    model_config = ConfigDict(extra='forbid')

    vmid: Optional[Scalar] = None
    name: Optional[str] = None
    cores: Optional[int] = Field(None, gt=0)
    memory: Optional[int] = Field(None, gt=0)
    disk_size: Optional[Scalar] = None
    bridge: Optional[str] = None
    mac: Optional[str] = None
    vlan: Optional[Scalar] = None
    mtu: Optional[Scalar] = None
    version: Optional[str] = None
    storage: Optional[str] = None


class TalosOverrides(NetworkOverrides):
    """Overrides accepted in the ``talos`` section."""

    machine: Optional[str] = None
    disk_cache: Optional[str] = None
    cpu_type: Optional[str] = None
    guest_agent: Optional[Flag] = None
    start: Optional[Flag] = None
    descriptor: Optional[str] = None


class EteSyncOverrides(NetworkOverrides):
    """Overrides accepted in the ``etesync`` section."""

    unprivileged: Optional[Flag] = None
    template: Optional[str] = None


class OverridesFile(BaseModel):
    model_config = ConfigDict(extra='forbid')

    talos: TalosOverrides = Field(default_factory=TalosOverrides)
    etesync: EteSyncOverrides = Field(default_factory=EteSyncOverrides)


def load_file(config_path: Union[str, Path]) -> OverridesFile:
    """Parse and validate an overrides file.

    Raises:
        FileNotFoundError: The file does not exist
        ValidationError: The YAML is malformed or has unknown/invalid keys
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValidationError(str(path), f"invalid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ValidationError(str(path), "top level must be a mapping")

    try:
        return OverridesFile.model_validate(raw)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = '.'.join(str(part) for part in first['loc'])
        raise ValidationError(location, first['msg']) from e


def env_overrides(profile: str, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    prefix = f"PVEPROV_{profile.upper()}_"
    names = PROFILES[profile].field_names()
    overrides = {}
    for name in names:
        key = prefix + name.upper()
        if key in environ:
            overrides[name] = environ[key]
    return overrides


def load_overrides(
    profile: str,
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Overrides for ``profile`` from the config file and environment."""
    overrides: Dict[str, Any] = {}

    if config_path:
        section = getattr(load_file(config_path), profile)
        overrides.update(section.model_dump(exclude_none=True))
        logger.debug(f"Loaded {len(overrides)} override(s) from {config_path}")

    from_env = env_overrides(profile, environ)
    if from_env:
        logger.debug(f"Environment overrides: {', '.join(sorted(from_env))}")
    overrides.update(from_env)
    return overrides
