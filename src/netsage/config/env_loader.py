"""Environment variable and configuration file loading."""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def get_global_config_dir() -> Path:
    """Return the global ~/.netsage directory."""
    return Path.home() / ".netsage"


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from .env file."""
    env_vars = {}
    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    # Remove quotes if present
                    value = value.strip().strip("\"'")
                    env_vars[key.strip()] = value
    return env_vars


def load_global_config() -> dict[str, Any]:
    """Load global configuration from ~/.netsage/config.yml."""
    config_path = get_global_config_dir() / "config.yml"
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        logger.warning("Ignoring unreadable config file %s", config_path, exc_info=True)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", config_path)
        return {}
    return data


def load_project_config(project_dir: Path | None = None) -> dict[str, str]:
    """Load a project-local .env file (defaults to the working directory)."""
    base = project_dir or Path.cwd()
    return load_env_file(base / ".env")
