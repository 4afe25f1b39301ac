"""
Configuration management for NetSage.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Project .env file (working directory)
3. Global config file (~/.netsage/config.yml)
4. Default values (lowest priority)
"""

from .env_loader import (
    get_global_config_dir,
    load_env_file,
    load_global_config,
    load_project_config,
)
from .getters import get_bool, get_config, get_float, get_int, get_list
from .settings import (
    DEFAULT_TCP_PORTS,
    DEFAULT_UDP_PORTS,
    EVASION_PROFILES,
    SEVERITY_TIERS,
    ScanOptions,
    ScanSettings,
)

__all__ = [
    # env_loader
    "get_global_config_dir",
    "load_env_file",
    "load_global_config",
    "load_project_config",
    # getters
    "get_bool",
    "get_config",
    "get_float",
    "get_int",
    "get_list",
    # settings
    "DEFAULT_TCP_PORTS",
    "DEFAULT_UDP_PORTS",
    "EVASION_PROFILES",
    "SEVERITY_TIERS",
    "ScanOptions",
    "ScanSettings",
]
