"""Tests for the nmap wrapper."""

import pytest

from conftest import nmap_xml
from netsage.exceptions import ToolNotFoundError
from netsage.tools.nmap import NmapRequest, NmapScanner, ScanMethod, parse_nmap_xml


@pytest.fixture
def no_sudo(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("netsage.tools.nmap.scanner._needs_sudo", lambda binary: False)
    monkeypatch.setattr("netsage.tools.nmap.scanner.resolve_binary", lambda name: "/usr/bin/nmap")


# ── Command construction ─────────────────────────────────────────────────


class TestBuildCommand:
    def test_connect_scan_with_ports(self, no_sudo) -> None:
        request = NmapRequest(
            target="example.com",
            method=ScanMethod.CONNECT,
            ports="80,443",
            host_timeout=54.4,
            max_retries=1,
            timing=4,
        )
        cmd = NmapScanner().build_command(request, "nmap")
        assert cmd[:4] == ["nmap", "-sT", "-p", "80,443"]
        assert "-sV" in cmd
        assert "-Pn" in cmd
        assert cmd[cmd.index("--host-timeout") + 1] == "54s"
        assert cmd[cmd.index("--max-retries") + 1] == "1"
        assert "-T4" in cmd
        assert cmd[-3:] == ["-oX", "-", "example.com"]

    def test_fast_scan_ignores_ports(self, no_sudo) -> None:
        request = NmapRequest(target="t", fast=True, ports="80", version_detection=False)
        cmd = NmapScanner().build_command(request)
        assert "-F" in cmd
        assert "-p" not in cmd
        assert "-sV" not in cmd

    def test_scripts_and_intensity(self, no_sudo) -> None:
        request = NmapRequest(
            target="t",
            version_intensity=7,
            default_scripts=True,
            scripts=["http-title", "ssl-cert"],
            min_rate=300,
            extra_args=["--script-args", "http.useragent=x"],
        )
        cmd = NmapScanner().build_command(request)
        assert "--version-intensity=7" in cmd
        assert "-sC" in cmd
        assert "--script=http-title,ssl-cert" in cmd
        assert "--min-rate=300" in cmd
        assert cmd.index("--script-args") < cmd.index("-oX")

    def test_raw_scan_prefixed_with_sudo(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("netsage.tools.nmap.scanner._needs_sudo", lambda binary: True)
        syn = NmapScanner().build_command(NmapRequest(target="t", method=ScanMethod.SYN))
        assert syn[:4] == ["sudo", "-n", "nmap", "-sS"]
        connect = NmapScanner().build_command(NmapRequest(target="t", method=ScanMethod.CONNECT))
        assert connect[0] == "nmap"

    def test_udp_flag(self, no_sudo) -> None:
        cmd = NmapScanner().build_command(NmapRequest(target="t", method=ScanMethod.UDP))
        assert cmd[1] == "-sU"


# ── Execution ────────────────────────────────────────────────────────────


class TestScan:
    @pytest.mark.asyncio
    async def test_missing_binary(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("netsage.tools.nmap.scanner.resolve_binary", lambda name: None)
        with pytest.raises(ToolNotFoundError):
            await NmapScanner().scan(NmapRequest(target="t"))

    @pytest.mark.asyncio
    async def test_runs_and_parses(self, no_sudo, make_result) -> None:
        seen = {}

        async def runner(cmd, timeout=None):
            seen["cmd"] = cmd
            seen["timeout"] = timeout
            xml = nmap_xml((80, "tcp", "open", "http"), (22, "tcp", "open", "ssh"))
            return make_result(stdout=xml)

        scanner = NmapScanner(command_runner=runner)
        ports = await scanner.scan_ports(NmapRequest(target="example.com", host_timeout=10))
        assert [(p.port, p.service) for p in ports] == [(80, "http"), (22, "ssh")]
        assert seen["cmd"][0] == "/usr/bin/nmap"
        assert seen["timeout"] == 15

    @pytest.mark.asyncio
    async def test_explicit_timeout_wins(self, no_sudo, make_result) -> None:
        seen = {}

        async def runner(cmd, timeout=None):
            seen["timeout"] = timeout
            return make_result(stdout="")

        await NmapScanner(runner).scan(NmapRequest(target="t", host_timeout=10), timeout=3)
        assert seen["timeout"] == 3


# ── XML parsing ──────────────────────────────────────────────────────────


class TestParseNmapXml:
    def test_one_host_one_port(self) -> None:
        hosts = parse_nmap_xml(nmap_xml((443, "tcp", "open", "https")))
        assert len(hosts) == 1
        assert hosts[0].ip == "93.184.216.34"
        assert hosts[0].status == "up"
        assert hosts[0].ports[0].port == 443

    def test_empty_and_invalid(self) -> None:
        assert parse_nmap_xml("") == []
        assert parse_nmap_xml("<nmaprun") == []

    def test_service_details_and_scripts(self) -> None:
        xml = """<?xml version="1.0"?>
<nmaprun>
  <host>
    <address addr="10.0.0.1" addrtype="ipv4"/>
    <hostnames><hostname name="web.local"/></hostnames>
    <ports>
      <port protocol="tcp" portid="8443">
        <state state="open"/>
        <service name="http" product="nginx" version="1.18.0" extrainfo="Ubuntu" tunnel="ssl"/>
        <script id="http-title" output=" Welcome "/>
        <script id="ssl-cert" output="Subject: commonName=web.local"/>
      </port>
      <port protocol="tcp" portid="bogus"><state state="open"/></port>
    </ports>
  </host>
  <host><status state="down"/></host>
</nmaprun>"""
        hosts = parse_nmap_xml(xml)
        assert len(hosts) == 1
        port = hosts[0].ports[0]
        assert hosts[0].hostname == "web.local"
        assert len(hosts[0].ports) == 1
        assert port.service == "https"
        assert port.product == "nginx"
        assert port.version == "1.18.0"
        assert port.extra_info == "Ubuntu"
        assert port.scripts == {
            "http-title": "Welcome",
            "ssl-cert": "Subject: commonName=web.local",
        }
