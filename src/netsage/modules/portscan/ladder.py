"""TCP port-scan escalation ladder and the parallel UDP sweep."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from netsage.config import ScanSettings
from netsage.exceptions import CommandTimeoutError
from netsage.modules.errors import ErrorKind, ErrorRecord, ScanStatus, classify_error, describe_error
from netsage.modules.evasion import EvasionProfile
from netsage.modules.target import ScanTarget
from netsage.modules.timeouts import Operation, Responsiveness, ScanClock
from netsage.tools.nmap import (
    NmapRequest,
    NmapScanner,
    PortScanResult,
    ScanMethod,
    can_send_raw_packets,
)

from .findings import PortCollection, PortFinding

logger = logging.getLogger(__name__)

COMPONENT = "port_scan"

# Below this many seconds a step is not worth launching.
MIN_STEP_SECONDS = 1.0

# nmap's --host-timeout is kept below the process timeout so it can still emit XML.
HOST_TIMEOUT_SHARE = 0.9

TIMING_TEMPLATES = {
    Responsiveness.RESPONSIVE: 4,
    Responsiveness.NORMAL: 3,
    Responsiveness.SLOW: 2,
}


class LadderStep(StrEnum):
    SYN_STANDARD = "syn-standard"
    SYN_SCRIPT = "syn-script"
    TCP_CONNECT = "tcp-connect"
    QUICK = "quick"


LADDER: tuple[LadderStep, ...] = (
    LadderStep.SYN_STANDARD,
    LadderStep.SYN_SCRIPT,
    LadderStep.TCP_CONNECT,
    LadderStep.QUICK,
)


def next_step(current: LadderStep | None, found_open: bool) -> LadderStep | None:
    """
    Transition rule: stop once a step found an open port, otherwise advance.

    ``current=None`` yields the first step; after the last step returns None.
    """
    if found_open:
        return None
    if current is None:
        return LADDER[0]
    index = LADDER.index(current)
    return LADDER[index + 1] if index + 1 < len(LADDER) else None


@dataclass
class StepAttempt:
    """Outcome of one ladder step (or the UDP sweep)."""

    step: str
    success: bool
    ports_found: int = 0
    open_ports: int = 0
    duration: float = 0.0
    timeout: float = 0.0
    error_kind: ErrorKind | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "success": self.success,
            "ports_found": self.ports_found,
            "open_ports": self.open_ports,
            "duration_ms": int(self.duration * 1000),
            "timeout_ms": int(self.timeout * 1000),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }


@dataclass
class PortScanState:
    """
    Everything the port-scan task produces.

    Owned by the orchestrator and written only by the port-scan task, so
    partial progress survives if that task is cancelled.
    """

    findings: PortCollection = field(default_factory=PortCollection)
    attempts: list[StepAttempt] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    successful_step: LadderStep | None = None
    udp_attempt: StepAttempt | None = None
    enrichment: dict[str, Any] = field(default_factory=dict)

    def record_error(self, component: str, kind: ErrorKind, message: str) -> None:
        self.errors.append(ErrorRecord(component=component, kind=kind, message=message))


class PortScanOrchestrator:
    """Drive the escalation ladder and UDP sweep against one target."""

    def __init__(
        self,
        scanner: NmapScanner,
        settings: ScanSettings,
        evasion: EvasionProfile,
        clock: ScanClock,
        script_args: Callable[[], list[str]] | None = None,
        raw_capable: Callable[[], bool] | None = None,
    ):
        self.scanner = scanner
        self.settings = settings
        self.evasion = evasion
        self.clock = clock
        self._script_args = script_args
        self._raw_capable = raw_capable or can_send_raw_packets

    def _timing(self, target: ScanTarget) -> int:
        timing = TIMING_TEMPLATES[target.responsiveness]
        return min(5, timing + 1) if self.settings.aggressive else timing

    def build_request(self, step: LadderStep, target: ScanTarget, host_timeout: float) -> NmapRequest:
        """Translate a ladder step into an nmap request."""
        request = NmapRequest(
            target=target.hostname,
            method=ScanMethod.SYN,
            ports=self.settings.port_list,
            host_timeout=host_timeout,
            timing=self._timing(target),
        )
        if step is LadderStep.SYN_SCRIPT:
            request.default_scripts = True
            request.scripts = ["banner"]
            if self._script_args:
                request.extra_args.extend(self._script_args())
        elif step is LadderStep.TCP_CONNECT:
            request.method = ScanMethod.CONNECT
            request.version_intensity = 7
        elif step is LadderStep.QUICK:
            request.method = ScanMethod.SYN if self._raw_capable() else ScanMethod.CONNECT
            request.fast = True
            request.ports = None
            request.version_detection = False
            request.min_rate = 300
        request.extra_args.extend(self.evasion.flags(raw_packets=request.method.raw_packets))
        return request

    def _step_timeout(self, target: ScanTarget, operation: Operation = Operation.PORT_SCAN) -> float:
        base = self.settings.port_scan_timeout_ms / 1000
        return self.clock.timeout_for(operation, base, target.responsiveness)

    async def _run_step(self, step: LadderStep, target: ScanTarget, state: PortScanState) -> bool:
        """Run one step; returns True when it produced at least one open port."""
        timeout = self._step_timeout(target)
        attempt = StepAttempt(step=step.value, success=False, timeout=timeout)
        state.attempts.append(attempt)

        if timeout < MIN_STEP_SECONDS:
            attempt.error_kind = ErrorKind.TIMEOUT
            attempt.message = "Overall scan budget exhausted before step could start"
            state.record_error(COMPONENT, ErrorKind.TIMEOUT, f"{step}: {attempt.message}")
            return False

        request = self.build_request(step, target, timeout * HOST_TIMEOUT_SHARE)
        if request.method.raw_packets and not self._raw_capable():
            attempt.error_kind = ErrorKind.PERMISSION_DENIED
            attempt.message = f"{request.method.flag} scan requires root privileges"
            state.record_error(COMPONENT, ErrorKind.PERMISSION_DENIED, f"{step}: {attempt.message}")
            logger.info("Skipping %s: %s", step, attempt.message)
            return False

        started = time.perf_counter()
        try:
            ports = await self.scanner.scan_ports(request, timeout=timeout)
        except Exception as exc:
            attempt.duration = time.perf_counter() - started
            attempt.error_kind = classify_error(exc)
            attempt.message = describe_error(exc)
            state.record_error(COMPONENT, attempt.error_kind, f"{step}: {attempt.message}")
            logger.warning("Port scan step %s failed (%s): %s", step, attempt.error_kind, exc)
            return False

        attempt.duration = time.perf_counter() - started
        attempt.success = True
        findings = [PortFinding.from_nmap(p, detection_method=f"nmap:{step}") for p in ports]
        state.findings.extend(findings)
        attempt.ports_found = len(findings)
        attempt.open_ports = sum(1 for f in findings if f.is_open)
        logger.info(
            "Port scan step %s finished in %.1fs: %d open", step, attempt.duration, attempt.open_ports
        )
        return attempt.open_ports > 0

    async def run_ladder(self, target: ScanTarget, state: PortScanState) -> None:
        """Run steps strictly in sequence until one finds an open port."""
        step = next_step(None, False)
        while step is not None:
            found = await self._run_step(step, target, state)
            if found:
                state.successful_step = step
            step = next_step(step, found)

    def build_udp_request(self, target: ScanTarget, host_timeout: float) -> NmapRequest:
        return NmapRequest(
            target=target.hostname,
            method=ScanMethod.UDP,
            ports=self.settings.udp_port_list,
            version_detection=False,
            host_timeout=host_timeout,
            max_retries=1,
            timing=self._timing(target),
            min_rate=300,
            extra_args=self.evasion.flags(raw_packets=True),
        )

    async def run_udp(self, target: ScanTarget) -> tuple[StepAttempt, list[PortScanResult]]:
        """UDP sweep over the curated port list. Never raises; failures land in the attempt."""
        timeout = self._step_timeout(target, Operation.UDP_SCAN)
        attempt = StepAttempt(step="udp", success=False, timeout=timeout)
        if timeout < MIN_STEP_SECONDS:
            attempt.error_kind = ErrorKind.TIMEOUT
            attempt.message = "Overall scan budget exhausted before UDP sweep could start"
            return attempt, []
        if not self._raw_capable():
            attempt.error_kind = ErrorKind.PERMISSION_DENIED
            attempt.message = "-sU scan requires root privileges"
            return attempt, []

        started = time.perf_counter()
        try:
            ports = await self.scanner.scan_ports(
                self.build_udp_request(target, timeout * HOST_TIMEOUT_SHARE), timeout=timeout
            )
        except Exception as exc:
            attempt.duration = time.perf_counter() - started
            attempt.error_kind = classify_error(exc)
            attempt.message = describe_error(exc)
            if not isinstance(exc, CommandTimeoutError):
                logger.warning("UDP sweep failed (%s): %s", attempt.error_kind, exc)
            return attempt, []
        attempt.duration = time.perf_counter() - started
        attempt.success = True
        attempt.ports_found = len(ports)
        attempt.open_ports = sum(1 for p in ports if p.state.startswith("open"))
        return attempt, ports

    async def run(self, target: ScanTarget, state: PortScanState) -> ScanStatus:
        """Run the TCP ladder and (optionally) the UDP sweep concurrently, then merge."""
        if self.settings.enable_udp:
            _, (udp_attempt, udp_ports) = await asyncio.gather(
                self.run_ladder(target, state), self.run_udp(target)
            )
            state.udp_attempt = udp_attempt
            state.attempts.append(udp_attempt)
            if udp_attempt.error_kind is not None:
                state.record_error("udp_scan", udp_attempt.error_kind, udp_attempt.message)
            # Only keep UDP ports that answered; closed/filtered UDP is noise.
            state.findings.extend(
                PortFinding.from_nmap(p, detection_method="nmap:udp")
                for p in udp_ports
                if p.state.startswith("open")
            )
        else:
            await self.run_ladder(target, state)
        return summarize_port_status(state)


def summarize_port_status(state: PortScanState) -> ScanStatus:
    """
    Derive the port-scan status.

    Success means at least one step ran to completion. A completed scan that
    found nothing open is still a success, and a NO_RESULTS record is
    appended so callers can tell "nothing listening" from "scan blocked".
    """
    completed = [a for a in state.attempts if a.success]
    open_count = len(state.findings.open_ports())
    if completed:
        if open_count == 0:
            if not any(e.kind is ErrorKind.NO_RESULTS for e in state.errors):
                state.record_error(COMPONENT, ErrorKind.NO_RESULTS, "No open ports detected")
            return ScanStatus.ok(False, "Scan completed; no open ports detected")
        step = state.successful_step.value if state.successful_step else "udp"
        return ScanStatus.ok(True, f"{open_count} open port(s) found via {step}")

    failures = [a for a in state.attempts if a.error_kind is not None]
    if not failures:
        return ScanStatus.failed(ErrorKind.UNKNOWN_ERROR, "No port scan step ran")
    last = failures[-1]
    return ScanStatus.failed(
        last.error_kind, f"All port scan methods failed; last: {last.step}: {last.message}"
    )
