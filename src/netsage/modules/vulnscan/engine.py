"""Vulnerability scan: WAF pre-check, template selection and one nuclei run."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from netsage.config import ScanSettings
from netsage.modules.errors import ErrorKind, ErrorRecord, ScanStatus, classify_error, describe_error
from netsage.modules.target import ScanTarget
from netsage.modules.timeouts import Operation, ScanClock
from netsage.tools.nuclei import NucleiRequest, NucleiRunner

from .findings import VulnerabilityFinding, normalize_findings
from .templates import WAF_DETECTION_TEMPLATES, TemplateManager, TemplateStats, severities_for

logger = logging.getLogger(__name__)

COMPONENT = "vulnerability_scan"

# The WAF pre-check never gets more than this, whatever the budget.
WAF_CHECK_MAX_SECONDS = 60.0
MIN_SCAN_SECONDS = 1.0


@dataclass
class WafCheck:
    performed: bool = False
    detected: bool = False
    names: list[str] = field(default_factory=list)
    error_kind: ErrorKind | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "performed": self.performed,
            "detected": self.detected,
            "names": list(self.names),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
        }


@dataclass
class VulnScanState:
    """Everything the vulnerability task produces; survives cancellation."""

    findings: list[VulnerabilityFinding] = field(default_factory=list)
    templates: list[str] = field(default_factory=list)
    severity: list[str] = field(default_factory=list)
    waf: WafCheck = field(default_factory=WafCheck)
    stats: TemplateStats | None = None
    errors: list[ErrorRecord] = field(default_factory=list)
    output_shape: str = ""
    duration: float = 0.0


def waf_names(records: list[dict[str, Any]]) -> list[str]:
    """WAF product names from WAF-detection records (matcher name first, then template name)."""
    names = []
    for record in records:
        info = record.get("info") if isinstance(record.get("info"), dict) else {}
        name = record.get("matcher-name") or info.get("name") or record.get("template-id")
        if name:
            names.append(str(name))
    return list(dict.fromkeys(names))


class VulnerabilityScanEngine:
    def __init__(
        self,
        runner: NucleiRunner,
        templates: TemplateManager,
        settings: ScanSettings,
        clock: ScanClock,
        proxy_url: str | None = None,
    ):
        self.runner = runner
        self.templates = templates
        self.settings = settings
        self.clock = clock
        self.proxy_url = proxy_url

    def build_request(self, target: ScanTarget, templates: list[str], severity: list[str]) -> NucleiRequest:
        return NucleiRequest(
            target=target.url,
            templates=templates,
            severity=severity,
            template_timeout=self.settings.nuclei_template_timeout,
            rate_limit=self.settings.nuclei_rate_limit,
            concurrency=self.settings.nuclei_concurrency,
            bulk_size=self.settings.nuclei_bulk_size,
            retries=self.settings.nuclei_retries,
            templates_dir=str(self.templates.templates_dir or ""),
            proxy=self.proxy_url,
        )

    async def check_waf(self, target: ScanTarget) -> WafCheck:
        """Run the WAF-detection templates. Failure only means "unknown", never aborts the scan."""
        check = WafCheck(performed=True)
        base = self.settings.timeout_ms / 1000
        timeout = min(
            WAF_CHECK_MAX_SECONDS,
            self.clock.timeout_for(Operation.HTTP, base, target.responsiveness),
        )
        if timeout < MIN_SCAN_SECONDS:
            check.error_kind = ErrorKind.TIMEOUT
            check.message = "No time left for WAF check"
            return check
        request = self.build_request(target, list(WAF_DETECTION_TEMPLATES), [])
        try:
            decoded = await self.runner.run(request, timeout=timeout)
        except Exception as exc:
            check.error_kind = classify_error(exc)
            check.message = describe_error(exc)
            logger.info("WAF check failed (%s): %s", check.error_kind, check.message)
            return check
        check.names = waf_names(decoded.records)
        check.detected = bool(check.names)
        if check.detected:
            logger.info("WAF detected on %s: %s", target.hostname, ", ".join(check.names))
        return check

    async def run(self, target: ScanTarget, state: VulnScanState) -> ScanStatus:
        """
        Full vulnerability scan for ``target``, writing progress into ``state``.

        Zero findings is a success. A nuclei failure (missing binary, non-zero
        exit, timeout) is classified and reported as a failed status.
        """
        started = time.perf_counter()
        try:
            state.severity = severities_for(self.settings.severity)
        except ValueError as exc:
            state.errors.append(ErrorRecord(COMPONENT, ErrorKind.INVALID_INPUT, str(exc)))
            return ScanStatus.failed(ErrorKind.INVALID_INPUT, str(exc))

        if self.settings.enable_waf_check:
            state.waf = await self.check_waf(target)
            if state.waf.error_kind is not None:
                state.errors.append(ErrorRecord("waf_check", state.waf.error_kind, state.waf.message))

        state.templates = self.templates.select(
            target,
            categories=self.settings.template_categories or None,
            waf_detected=state.waf.detected,
            comprehensive=self.settings.comprehensive,
        )
        if self.templates.templates_dir:
            state.stats = await asyncio.to_thread(self.templates.template_stats, state.templates)

        timeout = self.clock.timeout_for(
            Operation.VULN_SCAN, self.settings.vuln_scan_timeout_ms / 1000, target.responsiveness
        )
        if timeout < MIN_SCAN_SECONDS:
            message = "Overall scan budget exhausted before vulnerability scan could start"
            state.errors.append(ErrorRecord(COMPONENT, ErrorKind.TIMEOUT, message))
            return ScanStatus.failed(ErrorKind.TIMEOUT, message)

        request = self.build_request(target, state.templates, state.severity)
        logger.info(
            "Running nuclei against %s with %d template group(s), timeout %.0fs",
            target.url,
            len(state.templates),
            timeout,
        )
        try:
            decoded = await self.runner.run(request, timeout=timeout)
        except Exception as exc:
            state.duration = time.perf_counter() - started
            record = ErrorRecord.from_exception(COMPONENT, exc)
            state.errors.append(record)
            logger.warning("Vulnerability scan failed (%s): %s", record.kind, record.message)
            return ScanStatus.failed(record.kind, record.message)

        state.duration = time.perf_counter() - started
        state.output_shape = decoded.shape.value
        state.findings = normalize_findings(decoded.records)
        count = len(state.findings)
        if count == 0:
            return ScanStatus.ok(False, "Vulnerability scan completed; no findings")
        return ScanStatus.ok(True, f"{count} vulnerability finding(s)")
