"""Tests for the port-scan escalation ladder, UDP sweep and findings."""

import random
from dataclasses import replace

import pytest

from netsage.exceptions import CommandFailedError, CommandTimeoutError
from netsage.modules.errors import ErrorKind
from netsage.modules.evasion import build_profile
from netsage.modules.portscan import (
    LADDER,
    LadderStep,
    PortCollection,
    PortFinding,
    PortScanOrchestrator,
    PortScanState,
    canonical_service,
    default_port_for_scheme,
    extract_port_from_target,
    map_services_to_ports,
    next_step,
    normalize_state,
    ports_for_service,
    service_for_port,
)
from netsage.modules.target import resolve_target
from netsage.modules.timeouts import Responsiveness, ScanClock
from netsage.tools.nmap import PortScanResult, ScanMethod


class FakeScanner:
    """Returns canned results per ladder call; an Exception entry is raised instead."""

    def __init__(self, tcp_outcomes, udp_outcome=None):
        self.tcp_outcomes = list(tcp_outcomes)
        self.udp_outcome = udp_outcome if udp_outcome is not None else []
        self.requests = []

    async def scan_ports(self, request, timeout=None):
        self.requests.append((request, timeout))
        outcome = self.udp_outcome if request.method is ScanMethod.UDP else self.tcp_outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def port(number, state="open", service="", protocol="tcp"):
    return PortScanResult(port=number, protocol=protocol, state=state, service=service)


def make_orchestrator(scanner, settings, clock=None, raw=True, script_args=None):
    return PortScanOrchestrator(
        scanner,
        settings,
        build_profile("minimal", random.Random(0)),
        clock or ScanClock(600.0),
        script_args=script_args,
        raw_capable=lambda: raw,
    )


# ── Ladder transitions ───────────────────────────────────────────────────


class TestNextStep:
    def test_starts_at_first_step(self):
        assert next_step(None, False) is LadderStep.SYN_STANDARD

    def test_advances_in_order(self):
        assert [next_step(step, False) for step in LADDER] == [*LADDER[1:], None]

    def test_stops_on_open_port(self):
        assert next_step(LadderStep.SYN_STANDARD, True) is None


# ── Ladder execution ─────────────────────────────────────────────────────


class TestLadder:
    @pytest.mark.asyncio
    async def test_escalates_until_connect_scan_finds_ports(self, settings, target):
        timeout = CommandTimeoutError(["nmap"], 10)
        scanner = FakeScanner(
            [timeout, timeout, [port(80, service="http"), port(22, service="ssh")]]
        )
        state = PortScanState()
        status = await make_orchestrator(scanner, settings).run(target, state)

        assert status.success and status.results_found
        assert state.successful_step is LadderStep.TCP_CONNECT
        assert [a.step for a in state.attempts] == ["syn-standard", "syn-script", "tcp-connect"]
        assert [a.error_kind for a in state.attempts[:2]] == [ErrorKind.TIMEOUT] * 2
        assert [f.port for f in state.findings.open_ports()] == [22, 80]
        assert state.findings.get(80).detection_method == "nmap:tcp-connect"
        assert sum(1 for e in state.errors if e.kind is ErrorKind.TIMEOUT) == 2

    @pytest.mark.asyncio
    async def test_first_success_stops_ladder(self, settings, target):
        scanner = FakeScanner([[port(443, service="https")]])
        state = PortScanState()
        await make_orchestrator(scanner, settings).run(target, state)
        assert len(scanner.requests) == 1
        assert state.successful_step is LadderStep.SYN_STANDARD

    @pytest.mark.asyncio
    async def test_syn_steps_skipped_without_raw_privileges(self, settings, target):
        scanner = FakeScanner([[port(80)]])
        state = PortScanState()
        status = await make_orchestrator(scanner, settings, raw=False).run(target, state)
        assert status.success
        assert [a.error_kind for a in state.attempts[:2]] == [ErrorKind.PERMISSION_DENIED] * 2
        assert scanner.requests[0][0].method is ScanMethod.CONNECT

    @pytest.mark.asyncio
    async def test_no_open_ports_is_success_with_no_results(self, settings, target):
        closed = [port(80, state="closed")]
        scanner = FakeScanner([closed, closed, closed, closed])
        state = PortScanState()
        status = await make_orchestrator(scanner, settings).run(target, state)
        assert status.success
        assert not status.results_found
        assert len(state.attempts) == 4
        assert [e.kind for e in state.errors] == [ErrorKind.NO_RESULTS]
        assert state.findings.get(80).state == "closed"

    @pytest.mark.asyncio
    async def test_all_steps_fail(self, settings, target):
        refused = CommandFailedError(["nmap"], 1, "Connection refused")
        scanner = FakeScanner([refused] * 4)
        state = PortScanState()
        status = await make_orchestrator(scanner, settings).run(target, state)
        assert not status.success
        assert status.error_kind is ErrorKind.CONNECTION_REFUSED
        assert "quick" in status.message

    @pytest.mark.asyncio
    async def test_exhausted_budget_skips_steps(self, settings, target):
        now = [0.0]
        clock = ScanClock(10.0, now=lambda: now[0])
        now[0] = 9.5
        scanner = FakeScanner([])
        state = PortScanState()
        status = await make_orchestrator(scanner, settings, clock=clock).run(target, state)
        assert scanner.requests == []
        assert status.error_kind is ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_step_timeout_and_host_timeout(self, settings, target):
        scanner = FakeScanner([[port(80)]])
        await make_orchestrator(scanner, replace(settings, port_scan_timeout_ms=100_000)).run(
            target, PortScanState()
        )
        request, timeout = scanner.requests[0]
        assert timeout == pytest.approx(100.0)
        assert request.host_timeout == pytest.approx(90.0)

    @pytest.mark.asyncio
    async def test_responsive_target_gets_shorter_host_timeout(self, settings, target):
        settings = replace(settings, port_scan_timeout_ms=100_000)
        host_timeouts = {}
        for category in (Responsiveness.RESPONSIVE, Responsiveness.SLOW):
            scanner = FakeScanner([[port(80)]])
            await make_orchestrator(scanner, settings).run(
                target.with_responsiveness(category), PortScanState()
            )
            request, _ = scanner.requests[0]
            host_timeouts[category] = request.host_timeout
        assert host_timeouts[Responsiveness.RESPONSIVE] < host_timeouts[Responsiveness.SLOW]
        assert host_timeouts[Responsiveness.RESPONSIVE] == pytest.approx(67.5)
        assert host_timeouts[Responsiveness.SLOW] == pytest.approx(157.5)


class TestBuildRequest:
    def test_steps(self, settings, target):
        orchestrator = make_orchestrator(
            FakeScanner([]), settings, script_args=lambda: ["--script-args", "http.useragent=x"]
        )
        syn = orchestrator.build_request(LadderStep.SYN_STANDARD, target, 50)
        assert syn.method is ScanMethod.SYN
        assert syn.ports == settings.port_list
        assert "--data-length=8" in syn.extra_args

        script = orchestrator.build_request(LadderStep.SYN_SCRIPT, target, 50)
        assert script.default_scripts
        assert script.scripts == ["banner"]
        assert script.extra_args[:2] == ["--script-args", "http.useragent=x"]

        connect = orchestrator.build_request(LadderStep.TCP_CONNECT, target, 50)
        assert connect.method is ScanMethod.CONNECT
        assert connect.version_intensity == 7
        assert "--data-length=8" not in connect.extra_args

        quick = orchestrator.build_request(LadderStep.QUICK, target, 50)
        assert quick.fast and quick.ports is None
        assert not quick.version_detection

    def test_timing_follows_responsiveness(self, settings, target):
        orchestrator = make_orchestrator(FakeScanner([]), settings)
        slow = target.with_responsiveness(Responsiveness.SLOW)
        assert orchestrator.build_request(LadderStep.QUICK, slow, 10).timing == 2
        aggressive = make_orchestrator(FakeScanner([]), replace(settings, aggressive=True))
        assert aggressive.build_request(LadderStep.QUICK, target, 10).timing == 4


# ── UDP sweep ────────────────────────────────────────────────────────────


class TestUdpSweep:
    @pytest.mark.asyncio
    async def test_merges_open_udp_ports_without_colliding_with_tcp(self, settings, target):
        scanner = FakeScanner(
            [[port(53, service="domain"), port(53, service="domain")]],
            udp_outcome=[
                port(53, "open", "domain", "udp"),
                port(161, "open|filtered", "snmp", "udp"),
                port(123, "closed", "ntp", "udp"),
            ],
        )
        state = PortScanState()
        status = await make_orchestrator(scanner, replace(settings, enable_udp=True)).run(
            target, state
        )
        assert status.success
        keys = [f.key for f in state.findings.all()]
        assert keys == [(53, "tcp"), (53, "udp"), (161, "udp")]
        assert state.udp_attempt.success
        assert state.findings.get(161, "udp").detection_method == "nmap:udp"

    @pytest.mark.asyncio
    async def test_udp_failure_is_recorded_not_fatal(self, settings, target):
        scanner = FakeScanner([[port(80)]], udp_outcome=CommandTimeoutError(["nmap"], 5))
        state = PortScanState()
        status = await make_orchestrator(scanner, replace(settings, enable_udp=True)).run(
            target, state
        )
        assert status.success
        assert any(e.component == "udp_scan" and e.kind is ErrorKind.TIMEOUT for e in state.errors)

    @pytest.mark.asyncio
    async def test_udp_requires_raw_packets(self, settings, target):
        orchestrator = make_orchestrator(FakeScanner([]), settings, raw=False)
        attempt, ports = await orchestrator.run_udp(target)
        assert attempt.error_kind is ErrorKind.PERMISSION_DENIED
        assert ports == []


# ── Findings ─────────────────────────────────────────────────────────────


class TestFindings:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("open", "open"),
            ("open|filtered", "open"),
            ("closed|filtered", "filtered"),
            ("CLOSED", "closed"),
            ("unfiltered", "filtered"),
            ("", "unknown"),
        ],
    )
    def test_normalize_state(self, raw, expected):
        assert normalize_state(raw) == expected

    def test_collection_merges_same_key(self):
        collection = PortCollection()
        collection.add(PortFinding(port=80, state="filtered", detection_method="nmap:syn"))
        merged = collection.add(
            PortFinding(port=80, state="open", service="http", product="nginx")
        )
        assert len(collection) == 1
        assert merged.state == "open"
        assert merged.service == "http"
        assert merged.detection_method == "nmap:syn"

    def test_enrich_only_known_ports(self):
        collection = PortCollection()
        collection.add(PortFinding(port=22, state="open", service="tcpwrapped"))
        assert collection.enrich(22, service="ssh", banner="SSH-2.0-OpenSSH_8.9")
        assert not collection.enrich(23, service="telnet")
        finding = collection.get(22)
        assert finding.service == "ssh"
        assert finding.banner == "SSH-2.0-OpenSSH_8.9"
        assert (23, "tcp") not in collection

    def test_to_dict(self):
        data = PortFinding(port=443, state="open", product="nginx", version="1.18").to_dict()
        assert data["protocol"] == "tcp"
        assert data["service"] == "unknown"
        assert data["version"] == "nginx 1.18"
        assert data["banner"] is None


# ── Service mapping ──────────────────────────────────────────────────────


class TestServiceMap:
    def test_aliases(self):
        assert canonical_service("microsoft-ds") == "smb"
        assert canonical_service("HTTP-Alt") == "http"

    def test_lookup(self):
        assert ports_for_service("https") == [443, 8443]
        assert service_for_port(53, "udp") == "dns"
        assert service_for_port(3306) == "mysql"
        assert service_for_port(1) is None
        assert default_port_for_scheme("HTTPS") == 443
        assert default_port_for_scheme("gopher") is None

    def test_extract_port_from_target(self):
        explicit = extract_port_from_target(resolve_target("example.com:8080"))
        assert explicit["ports_found"][0]["port"] == 8080
        assert explicit["ports_found"][0]["detected_from"] == "explicit_url_port"
        default = extract_port_from_target(resolve_target("https://example.com"))
        assert default["ports_found"][0]["detected_from"] == "protocol_default"

    def test_map_services(self):
        result = map_services_to_ports(["ssh", "nonsense"])
        assert result["mapping_successful"]
        assert result["mappings"] == [{"service": "ssh", "ports": [22], "protocol": "tcp"}]
        assert map_services_to_ports([])["message"]
