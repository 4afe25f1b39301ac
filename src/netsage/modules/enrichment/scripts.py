"""Per-service NSE script probes and the enrichment pass over port findings."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from netsage.modules.errors import ErrorKind, classify_error, describe_error
from netsage.modules.portscan import PortFinding, PortScanState, canonical_service
from netsage.modules.target import ScanTarget
from netsage.modules.timeouts import Operation, ScanClock
from netsage.tools.nmap import NmapRequest, NmapScanner, PortScanResult, ScanMethod

from .banner import BannerGrabber, identify_banner

logger = logging.getLogger(__name__)

COMPONENT = "service_enrichment"
MAX_PROBED_PORTS = 3
PROBE_TIMEOUT = 30.0

_HTTP_SCRIPTS = ["http-headers", "http-title", "http-server-header"]

SERVICE_SCRIPTS: dict[str, list[str]] = {
    "http": _HTTP_SCRIPTS,
    "https": _HTTP_SCRIPTS + ["ssl-cert"],
    "ssh": ["ssh-auth-methods", "ssh-hostkey", "ssh2-enum-algos"],
    "ftp": ["ftp-anon", "ftp-bounce"],
    "smtp": ["smtp-commands", "smtp-enum-users"],
    "mysql": ["mysql-info"],
    "mssql": ["ms-sql-info"],
    "mongodb": ["mongodb-info"],
    "redis": ["redis-info"],
    "oracle": ["oracle-tns-version"],
    "postgresql": ["banner"],
}
DEFAULT_SCRIPTS = ["banner"]


def scripts_for_service(service: str) -> list[str]:
    return list(SERVICE_SCRIPTS.get(canonical_service(service), DEFAULT_SCRIPTS))


class ServiceEnricher:
    """
    Upgrades existing port findings with script output and banners.

    Probes run concurrently and only return data; all writes to the finding
    collection happen afterwards in :meth:`enrich`, so the collection keeps a
    single writer.
    """

    def __init__(
        self,
        scanner: NmapScanner,
        clock: ScanClock,
        grabber: BannerGrabber | None = None,
        max_ports: int = MAX_PROBED_PORTS,
        probe_timeout: float = PROBE_TIMEOUT,
        script_args: Callable[[], list[str]] | None = None,
    ):
        self.scanner = scanner
        self.clock = clock
        self.grabber = grabber
        self.max_ports = max_ports
        self.probe_timeout = probe_timeout
        self._script_args = script_args

    def build_request(self, host: str, finding: PortFinding, host_timeout: float) -> NmapRequest:
        request = NmapRequest(
            target=host,
            method=ScanMethod.CONNECT,
            ports=str(finding.port),
            scripts=scripts_for_service(finding.service),
            host_timeout=host_timeout,
            max_retries=1,
        )
        if self._script_args:
            request.extra_args.extend(self._script_args())
        return request

    async def probe(self, target: ScanTarget, finding: PortFinding) -> PortScanResult | None:
        """Run the script set for one port. Failures and timeouts yield None."""
        timeout = self.clock.timeout_for(
            Operation.SERVICE_PROBE, self.probe_timeout, target.responsiveness
        )
        if timeout < 1.0:
            return None
        request = self.build_request(target.hostname, finding, timeout)
        try:
            ports = await self.scanner.scan_ports(request, timeout=timeout)
        except Exception as exc:
            kind = classify_error(exc)
            log = logger.info if kind is ErrorKind.TIMEOUT else logger.warning
            log("Script probe for port %d failed (%s): %s", finding.port, kind, describe_error(exc))
            return None
        for port in ports:
            if port.port == finding.port:
                return port
        return None

    async def enrich(
        self, target: ScanTarget, state: PortScanState, grab_banners: bool = True
    ) -> dict[str, Any]:
        """Probe the first open TCP ports and grab banners; returns a summary."""
        open_tcp = state.findings.open_ports("tcp")
        probed = open_tcp[: self.max_ports]

        probe_task = asyncio.gather(*(self.probe(target, f) for f in probed))
        if grab_banners and self.grabber and open_tcp:
            banner_task = self.grabber.grab_many(
                target.hostname, [(f.port, f.service) for f in open_tcp]
            )
        else:
            banner_task = _empty_banners()
        probe_results, banners = await asyncio.gather(probe_task, banner_task)

        enriched = 0
        for finding, result in zip(probed, probe_results, strict=True):
            if result is None:
                continue
            if state.findings.enrich(
                finding.port,
                "tcp",
                service=result.service,
                product=result.product,
                version=result.version,
                scripts=result.scripts,
            ):
                enriched += 1

        for port, banner in banners.items():
            identified = identify_banner(banner)
            service, product, version = identified if identified else ("", "", "")
            state.findings.enrich(
                port, "tcp", banner=banner, service=service, product=product, version=version
            )

        summary = {
            "script_probes": {"attempted": len(probed), "enriched": enriched},
            "banner_grabbing": {
                "enabled": bool(grab_banners and self.grabber),
                "attempted": len(open_tcp) if grab_banners and self.grabber else 0,
                "captured": len(banners),
                "ports": sorted(banners),
            },
        }
        state.enrichment = summary
        return summary


async def _empty_banners() -> dict[int, str]:
    return {}
