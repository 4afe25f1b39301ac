"""Tests for raw-packet privilege detection."""

import os
import subprocess
import sys

import pytest

from netsage.tools.nmap import privileges
from netsage.tools.nmap.privileges import (
    _can_sudo_without_password,
    _is_root,
    _needs_sudo,
    can_send_raw_packets,
)


@pytest.fixture(autouse=True)
def clear_sudo_cache():
    _can_sudo_without_password.cache_clear()
    yield
    _can_sudo_without_password.cache_clear()


class TestIsRoot:
    def test_euid_zero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setattr(os, "geteuid", lambda: 0)
        assert _is_root() is True

    def test_regular_user(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setattr(os, "geteuid", lambda: 1000)
        assert _is_root() is False

    def test_geteuid_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom():
            raise OSError()

        monkeypatch.setattr(sys, "platform", "linux")
        monkeypatch.setattr(os, "geteuid", boom)
        assert _is_root() is False


class TestSudo:
    def test_no_binary_means_no_sudo(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(privileges.shutil, "which", lambda name: None)
        assert _can_sudo_without_password("nmap") is False

    def test_passwordless_sudo(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(privileges.shutil, "which", lambda name: f"/usr/bin/{name}")
        monkeypatch.setattr(
            privileges.subprocess,
            "run",
            lambda *a, **k: subprocess.CompletedProcess(a[0], 0),
        )
        assert _can_sudo_without_password("nmap") is True

    def test_sudo_prompt_times_out(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def slow(*args, **kwargs):
            raise subprocess.TimeoutExpired(args[0], 5)

        monkeypatch.setattr(privileges.shutil, "which", lambda name: f"/usr/bin/{name}")
        monkeypatch.setattr(privileges.subprocess, "run", slow)
        assert _can_sudo_without_password("nmap") is False

    def test_root_never_needs_sudo(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(privileges, "_is_root", lambda: True)
        monkeypatch.setattr(privileges, "_can_sudo_without_password", lambda b: True)
        assert _needs_sudo("nmap") is False
        assert can_send_raw_packets("nmap") is True

    def test_unprivileged_without_sudo(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(privileges, "_is_root", lambda: False)
        monkeypatch.setattr(privileges, "_can_sudo_without_password", lambda b: False)
        assert _needs_sudo("nmap") is False
        assert can_send_raw_packets("nmap") is False
