"""Parameter resolution and overrides."""
from pveprov.config.loader import load_overrides
from pveprov.config.profiles import ETESYNC, PROFILES, TALOS
from pveprov.config.resolver import ParameterResolver

__all__ = ['ETESYNC', 'PROFILES', 'ParameterResolver', 'TALOS', 'load_overrides']
