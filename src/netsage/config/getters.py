"""Configuration getter functions."""

import logging
import os
from pathlib import Path
from typing import Any

from .env_loader import load_global_config, load_project_config

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def get_config(key: str, project_dir: Path | None = None, default: Any = None) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable
    2. Project .env file
    3. Global config file
    4. Default value

    Args:
        key: Configuration key
        project_dir: Optional project directory
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # 1. Check environment variable
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    # 2. Check project .env file
    project_config = load_project_config(project_dir)
    if key in project_config:
        return project_config[key]

    # 3. Check global config
    global_config = load_global_config()
    if key in global_config:
        return global_config[key]

    # 4. Return default
    return default


def get_int(key: str, default: int, project_dir: Path | None = None) -> int:
    """Get an integer setting, falling back to default on malformed values."""
    value = get_config(key, project_dir, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s: %r (using %s)", key, value, default)
        return default


def get_float(key: str, default: float, project_dir: Path | None = None) -> float:
    """Get a float setting, falling back to default on malformed values."""
    value = get_config(key, project_dir, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for %s: %r (using %s)", key, value, default)
        return default


def get_bool(key: str, default: bool, project_dir: Path | None = None) -> bool:
    """Get a boolean setting. Accepts 1/0, true/false, yes/no, on/off."""
    value = get_config(key, project_dir, default)
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    logger.warning("Invalid boolean for %s: %r (using %s)", key, value, default)
    return default


def get_list(key: str, default: list[str], project_dir: Path | None = None) -> list[str]:
    """Get a comma-separated (or YAML list) setting."""
    value = get_config(key, project_dir, None)
    if value is None:
        return list(default)
    if isinstance(value, list | tuple):
        return [str(item).strip() for item in value if str(item).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]
