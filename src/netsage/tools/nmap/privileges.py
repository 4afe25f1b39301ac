"""Privilege checks for raw-packet nmap scans."""

import os
import shutil
import subprocess
import sys
from functools import lru_cache


def _is_root() -> bool:
    """Return True if running as root (Unix) or elevated admin (Windows)."""
    if sys.platform == "win32":
        try:
            import ctypes

            return ctypes.windll.shell32.IsUserAnAdmin() != 0  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False
    try:
        return os.geteuid() == 0
    except (AttributeError, OSError):
        return False


@lru_cache(maxsize=8)
def _can_sudo_without_password(binary: str) -> bool:
    """Check once per binary whether ``sudo -n`` can run it without a prompt."""
    bin_path = shutil.which(binary)
    if not bin_path or not shutil.which("sudo"):
        return False
    try:
        result = subprocess.run(
            ["sudo", "-n", bin_path, "--version"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


def _needs_sudo(binary: str) -> bool:
    """True when a raw-packet scan should be prefixed with sudo."""
    return not _is_root() and _can_sudo_without_password(binary)


def can_send_raw_packets(binary: str = "nmap") -> bool:
    """True when SYN/UDP scans can run (as root or through passwordless sudo)."""
    return _is_root() or _can_sudo_without_password(binary)
