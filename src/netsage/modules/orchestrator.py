"""Top-level scan: port, HTTP and vulnerability tasks under one deadline."""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from netsage.config import ScanOptions, ScanSettings
from netsage.tools.http import build_http_profile
from netsage.tools.nmap import NmapScanner
from netsage.tools.nuclei import NucleiRunner

from .aggregator import ScanArtifacts, build_result
from .detection import AlternativeDetector, DetectionResult
from .enrichment import BannerGrabber, ServiceEnricher
from .errors import ErrorKind, ErrorRecord, ScanStatus, classify_status, describe_error
from .evasion import build_profile
from .portscan import PortScanOrchestrator, PortScanState
from .proxy import ProxyManager
from .target import ScanTarget, probe_responsiveness, resolve_target
from .timeouts import Operation, ScanClock
from .vulnscan import TemplateManager, VulnerabilityScanEngine, VulnScanState

logger = logging.getLogger(__name__)

# Alternative detection only starts with at least this much budget left.
MIN_DETECTION_SECONDS = 2.0
DETECTION_TIMEOUT = 30.0
# Upper bound for the proxy self-test that runs before a proxied scan.
PROXY_VALIDATION_TIMEOUT = 15.0

Prober = Callable[..., Awaitable[Any]]


class ScanOrchestrator:
    """
    Runs one complete scan and returns the canonical result document.

    Stateless between calls: every scan builds its own clock, proxy manager
    and sub-scan state. Collaborators are injectable so tests can replace
    the external tools.
    """

    def __init__(
        self,
        settings: ScanSettings | None = None,
        nmap: NmapScanner | None = None,
        nuclei: NucleiRunner | None = None,
        grabber: BannerGrabber | None = None,
        detector_factory: Callable[[ProxyManager], AlternativeDetector] | None = None,
        proxy_factory: Callable[[ScanSettings], ProxyManager] | None = None,
        prober: Prober | None = None,
        raw_capable: Callable[[], bool] | None = None,
        rng: random.Random | None = None,
        now: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or ScanSettings.load()
        self.nmap = nmap or NmapScanner()
        self.nuclei = nuclei or NucleiRunner()
        self.grabber = grabber
        self._detector_factory = detector_factory or self._default_detector
        self._proxy_factory = proxy_factory or self._default_proxy
        self._prober = prober or probe_responsiveness
        self._raw_capable = raw_capable
        self._rng = rng
        self._now = now

    @staticmethod
    def _default_proxy(settings: ScanSettings) -> ProxyManager:
        return ProxyManager.from_urls(
            settings.proxies,
            use_tor=settings.use_tor,
            allow_direct_fallback=settings.allow_direct_fallback,
            max_pool_size=settings.max_pool_size,
            timeout=settings.timeout_ms / 1000,
        )

    @staticmethod
    def _default_detector(proxy: ProxyManager) -> AlternativeDetector:
        return AlternativeDetector(fetch=proxy.get)

    # ── sub-scans ────────────────────────────────────────────────

    async def _port_task(
        self,
        target: ScanTarget,
        settings: ScanSettings,
        scanner: PortScanOrchestrator,
        enricher: ServiceEnricher,
        state: PortScanState,
    ) -> ScanStatus:
        status = await scanner.run(target, state)
        if state.findings.open_ports("tcp"):
            await enricher.enrich(target, state, grab_banners=settings.enable_banner_grab)
        return status

    async def _http_task(
        self,
        target: ScanTarget,
        settings: ScanSettings,
        proxy: ProxyManager,
        clock: ScanClock,
        sink: dict[str, Any],
        errors: list[ErrorRecord],
    ) -> ScanStatus:
        timeout = clock.timeout_for(Operation.HTTP, settings.timeout_ms / 1000, target.responsiveness)
        try:
            response = await proxy.get(target.url, timeout=timeout)
        except Exception as exc:
            record = ErrorRecord.from_exception("http_analysis", exc)
            errors.append(record)
            logger.warning("HTTP analysis of %s failed (%s): %s", target.url, record.kind, exc)
            return ScanStatus.failed(record.kind, record.message)
        sink.update(build_http_profile(response))
        blocked = classify_status(response.status_code)
        if blocked is not None:
            errors.append(
                ErrorRecord("http_analysis", blocked, f"HTTP {response.status_code} from {target.url}")
            )
        return ScanStatus.ok(True, f"HTTP {response.status_code} {response.reason}".strip())

    # ── scan ─────────────────────────────────────────────────────

    async def scan(
        self,
        raw_target: str,
        options: ScanOptions | dict[str, Any] | None = None,
        scan_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Scan one target.

        Raises ``InvalidTargetError`` for an unusable target and ValueError
        for invalid options; every other failure ends up in the document.
        """
        if not isinstance(options, ScanOptions):
            options = ScanOptions.from_dict(options)
        settings = options.apply(self.settings)
        target = resolve_target(raw_target)
        scan_id = scan_id or str(uuid.uuid4())

        started_at = datetime.now(UTC)
        clock = ScanClock(settings.overall_timeout_ms / 1000, now=self._now)
        proxy = self._proxy_factory(settings)
        artifacts = ScanArtifacts(
            scan_id=scan_id,
            target=target,
            raw_target=raw_target,
            options=options.to_dict(),
            started_at=started_at,
        )
        try:
            await self._run(target, settings, clock, proxy, artifacts)
        finally:
            artifacts.proxy = proxy.stats()
            await proxy.aclose()

        artifacts.completed_at = datetime.now(UTC)
        artifacts.duration_ms = int(clock.elapsed() * 1000)
        logger.info(
            "Scan %s of %s finished in %dms%s",
            scan_id,
            artifacts.target.url,
            artifacts.duration_ms,
            " (timed out)" if artifacts.timed_out else "",
        )
        return build_result(artifacts)

    async def _run(
        self,
        target: ScanTarget,
        settings: ScanSettings,
        clock: ScanClock,
        proxy: ProxyManager,
        artifacts: ScanArtifacts,
    ) -> None:
        if proxy.enabled:
            await self._self_test_proxies(proxy, clock, artifacts.errors)
        responsiveness = await self._prober(
            target, fetch=lambda url, timeout: proxy.request_once(url, timeout=timeout)
        )
        target = target.with_responsiveness(responsiveness)
        artifacts.target = target

        evasion = build_profile(settings.evasion_profile, self._rng)
        artifacts.evasion = evasion.describe()
        script_args = proxy.nmap_script_args if proxy.enabled else None

        port_state = PortScanState()
        http_sink: dict[str, Any] = {}
        vuln_state = VulnScanState()
        artifacts.ports = port_state
        artifacts.vulns = vuln_state

        port_scanner = PortScanOrchestrator(
            self.nmap,
            settings,
            evasion,
            clock,
            script_args=script_args,
            raw_capable=self._raw_capable,
        )
        grabber = self.grabber or (BannerGrabber() if settings.enable_banner_grab else None)
        enricher = ServiceEnricher(self.nmap, clock, grabber=grabber, script_args=script_args)

        tasks: dict[str, asyncio.Task[ScanStatus]] = {
            "port_scan": asyncio.create_task(
                self._port_task(target, settings, port_scanner, enricher, port_state)
            ),
            "http_analysis": asyncio.create_task(
                self._http_task(target, settings, proxy, clock, http_sink, artifacts.errors)
            ),
        }
        if settings.enable_vuln_scan:
            endpoint = proxy.next_proxy()
            templates = TemplateManager(
                settings.nuclei_templates_dir or None, settings.custom_templates_dir or None
            )
            engine = VulnerabilityScanEngine(
                self.nuclei,
                templates,
                settings,
                clock,
                proxy_url=endpoint.url if endpoint else None,
            )
            tasks["vulnerability_scan"] = asyncio.create_task(engine.run(target, vuln_state))
        else:
            artifacts.statuses["vulnerability_scan"] = ScanStatus.not_run("Vulnerability scan disabled")

        _, pending = await asyncio.wait(tasks.values(), timeout=clock.remaining())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            artifacts.timed_out = True

        for name, task in tasks.items():
            artifacts.statuses[name] = self._settle(name, task, artifacts.errors)
        if http_sink:
            artifacts.http = http_sink

        if self._needs_detection(settings, artifacts, clock):
            artifacts.detection = await self._detect(target, proxy, clock, artifacts.errors)
        if clock.expired:
            artifacts.timed_out = True

    @staticmethod
    async def _self_test_proxies(proxy: ProxyManager, clock: ScanClock, errors: list[ErrorRecord]) -> None:
        """Drop configured proxies (and Tor) that fail the connectivity test."""
        configured = list(proxy.proxies)
        tor_configured = proxy.use_tor
        try:
            await asyncio.wait_for(
                proxy.validate(), timeout=min(PROXY_VALIDATION_TIMEOUT, clock.remaining())
            )
        except TimeoutError:
            errors.append(
                ErrorRecord("proxy", ErrorKind.TIMEOUT, "Proxy self-test timed out; proxies used untested")
            )
            logger.warning("Proxy self-test timed out; continuing with the configured proxies")
            proxy.proxies, proxy.use_tor, proxy.failed = configured, tor_configured, []
            return
        discarded = [endpoint.key for endpoint in proxy.failed]
        if tor_configured and not proxy.use_tor:
            discarded.append("tor")
        if not discarded:
            return
        message = f"Discarded non-working proxies: {', '.join(discarded)}"
        if not proxy.enabled:
            if proxy.allow_direct_fallback:
                logger.warning("No working proxies left; requests go direct")
            else:
                # Direct traffic is not allowed, so the rotation stays as configured.
                proxy.proxies, proxy.use_tor, proxy.failed = configured, tor_configured, []
                message = f"No proxy passed the self-test and direct fallback is disabled: {', '.join(discarded)}"
        errors.append(ErrorRecord("proxy", ErrorKind.CONFIGURATION_ERROR, message))

    @staticmethod
    def _settle(name: str, task: asyncio.Task[ScanStatus], errors: list[ErrorRecord]) -> ScanStatus:
        if task.cancelled():
            message = f"{name} did not finish before the overall scan deadline"
            errors.append(ErrorRecord(name, ErrorKind.TIMEOUT, message))
            logger.warning("Scan deadline reached; %s cancelled", name)
            return ScanStatus.failed(ErrorKind.TIMEOUT, message)
        exc = task.exception()
        if exc is not None:
            errors.append(ErrorRecord.from_exception(name, exc))
            logger.error("%s crashed: %s", name, describe_error(exc), exc_info=exc)
            return ScanStatus.from_exception(exc)
        return task.result()

    @staticmethod
    def _needs_detection(settings: ScanSettings, artifacts: ScanArtifacts, clock: ScanClock) -> bool:
        if not settings.enable_alternative or clock.remaining() < MIN_DETECTION_SECONDS:
            return False
        no_ports = artifacts.ports is None or not artifacts.ports.findings.open_ports()
        http = artifacts.statuses["http_analysis"]
        vuln = artifacts.statuses["vulnerability_scan"]
        return no_ports or not http.success or not (vuln.success or vuln.skipped)

    async def _detect(
        self, target: ScanTarget, proxy: ProxyManager, clock: ScanClock, errors: list[ErrorRecord]
    ) -> DetectionResult | None:
        detector = self._detector_factory(proxy)
        timeout = min(DETECTION_TIMEOUT, clock.remaining())
        logger.info("Running alternative detection for %s", target.hostname)
        try:
            return await asyncio.wait_for(detector.detect(target), timeout=timeout)
        except TimeoutError:
            errors.append(
                ErrorRecord("alternative_detection", ErrorKind.TIMEOUT, "Alternative detection timed out")
            )
            return None
