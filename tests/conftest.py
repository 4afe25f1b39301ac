"""Test configuration and fixtures for NetSage."""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from netsage.config import ScanSettings
from netsage.modules.target import ScanTarget, resolve_target
from netsage.modules.timeouts import Responsiveness, ScanClock
from netsage.tools.runtime import CommandResult


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep the real ~/.netsage, .env and NETSAGE_* variables out of every test."""
    import os

    home = tmp_path / "home"
    home.mkdir()
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.chdir(workdir)
    for key in list(os.environ):
        if key.startswith("NETSAGE_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def settings() -> ScanSettings:
    """Settings with generous budgets and no optional network work."""
    return ScanSettings(
        overall_timeout_ms=600_000,
        enable_udp=False,
        enable_banner_grab=False,
        enable_alternative=False,
        enable_waf_check=False,
    )


@pytest.fixture
def clock() -> ScanClock:
    return ScanClock(600.0)


@pytest.fixture
def target() -> ScanTarget:
    return resolve_target("http://example.com").with_responsiveness(Responsiveness.NORMAL)


@pytest.fixture
def make_result() -> Callable[..., CommandResult]:
    """Build CommandResult objects for fake command runners."""

    def _make(stdout: str = "", stderr: str = "", returncode: int = 0) -> CommandResult:
        return CommandResult(command=["fake"], returncode=returncode, stdout=stdout, stderr=stderr)

    return _make


def nmap_xml(*ports: tuple[int, str, str, str], host: str = "93.184.216.34") -> str:
    """Minimal ``nmap -oX`` document; each port is (portid, protocol, state, service)."""
    rows = "\n".join(
        f'      <port protocol="{proto}" portid="{port}">'
        f'<state state="{state}"/><service name="{service}"/></port>'
        for port, proto, state, service in ports
    )
    return f"""<?xml version="1.0"?>
<nmaprun>
  <host>
    <status state="up"/>
    <address addr="{host}" addrtype="ipv4"/>
    <ports>
{rows}
    </ports>
  </host>
</nmaprun>
"""
