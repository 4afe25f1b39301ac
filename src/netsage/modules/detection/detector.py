"""Passive detection used when active probing is blocked or came back empty."""

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from netsage.modules.errors import ErrorRecord
from netsage.modules.portscan import PortFinding
from netsage.modules.target import ScanTarget
from netsage.tools.http import HTTPClient, HTTPResponse

from .fingerprints import (
    Technology,
    detect_cookie_technologies,
    detect_frontend,
    detect_header_technologies,
    detect_waf,
)
from .tls import fetch_certificate, issuer_technologies, parse_certificate

logger = logging.getLogger(__name__)

COMPONENT = "alternative_detection"
DEFAULT_TIMEOUT = 10.0

PageFetcher = Callable[[str], Awaitable[HTTPResponse]]
CertFetcher = Callable[[str, int, float], Awaitable[bytes]]


@dataclass
class DetectionResult:
    performed: bool = False
    methods_applied: list[str] = field(default_factory=list)
    tls_info: dict[str, Any] | None = None
    http_fingerprint: dict[str, Any] | None = None
    technologies: list[Technology] = field(default_factory=list)
    security_products: list[str] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.methods_applied)

    @property
    def server(self) -> str:
        if self.http_fingerprint:
            return self.http_fingerprint.get("server") or ""
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "performed": self.performed,
            "success": self.success,
            "methods_applied": list(self.methods_applied),
            "tls_info": self.tls_info,
            "http_fingerprint": self.http_fingerprint,
            "technologies_detected": [t.to_dict() for t in self.technologies],
            "security_products": list(self.security_products),
            "errors": [e.to_dict() for e in self.errors],
        }


def http_fingerprint(response: HTTPResponse) -> dict[str, Any]:
    body = response.body or ""
    return {
        "url": response.url,
        "status_code": response.status_code,
        "server": response.server,
        "content_type": response.content_type,
        "content_length": len(body.encode("utf-8", errors="replace")),
        "headers": dict(response.headers),
        "cookies": sorted(response.cookies),
        "body_sha256": hashlib.sha256(body.encode("utf-8", errors="replace")).hexdigest(),
        "response_time_ms": int(response.response_time * 1000),
    }


def _dedupe_technologies(items: list[Technology]) -> list[Technology]:
    seen: dict[str, Technology] = {}
    for tech in items:
        key = tech.name.lower()
        current = seen.get(key)
        if current is None or (not current.version and tech.version):
            seen[key] = tech
    return list(seen.values())


def synthetic_port_entry(target: ScanTarget, detection: DetectionResult | None = None) -> PortFinding:
    """Entry for the target's own web port (explicit or scheme default) when nothing was found actively."""
    https = target.is_tls
    product = detection.server if detection else ""
    return PortFinding(
        port=target.port,
        transport="tcp",
        service="https" if https else "http",
        product=product,
        state="filtered",
        detection_method="alternative",
    )


class AlternativeDetector:
    """TLS certificate, HTTP fingerprint and technology detection without port scanning."""

    def __init__(
        self,
        fetch: PageFetcher | None = None,
        cert_fetcher: CertFetcher | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        enable_tls: bool = True,
        enable_http: bool = True,
    ):
        self._fetch = fetch
        self._cert_fetcher = cert_fetcher or fetch_certificate
        self.timeout = timeout
        self.enable_tls = enable_tls
        self.enable_http = enable_http

    async def _get(self, url: str) -> HTTPResponse:
        if self._fetch is not None:
            return await self._fetch(url)
        async with HTTPClient(timeout=self.timeout) as client:
            return await client.get(url)

    async def _analyze_tls(self, target: ScanTarget, result: DetectionResult) -> None:
        der = await self._cert_fetcher(target.hostname, target.port, self.timeout)
        info = parse_certificate(der)
        result.tls_info = info.to_dict()
        result.methods_applied.append("ssl_certificate")
        result.technologies.extend(
            Technology(name, "certificate", "high", source="certificate_issuer")
            for name in issuer_technologies(info.issuer)
        )

    async def _analyze_http(self, target: ScanTarget, result: DetectionResult) -> None:
        response = await self._get(target.url)
        result.http_fingerprint = http_fingerprint(response)
        result.methods_applied.append("http_fingerprint")
        result.technologies.extend(detect_header_technologies(response.headers))
        result.technologies.extend(detect_cookie_technologies(response.cookies))
        result.security_products.extend(detect_waf(response.headers, response.cookies))
        if "html" in response.content_type.lower() or response.body.lstrip().startswith("<"):
            frontend = detect_frontend(response.body)
            if frontend:
                result.methods_applied.append("js_css_fingerprint")
                result.technologies.extend(frontend)

    async def detect(self, target: ScanTarget) -> DetectionResult:
        """Run every enabled method; a failing method is recorded and the others still run."""
        result = DetectionResult(performed=True)
        methods = []
        if self.enable_tls and target.is_tls:
            methods.append(("ssl_certificate", self._analyze_tls))
        if self.enable_http:
            methods.append(("http_fingerprint", self._analyze_http))

        for name, method in methods:
            try:
                await method(target, result)
            except Exception as exc:
                record = ErrorRecord.from_exception(f"{COMPONENT}:{name}", exc)
                result.errors.append(record)
                logger.info("Alternative detection %s failed (%s): %s", name, record.kind, exc)

        result.technologies = _dedupe_technologies(result.technologies)
        result.security_products = list(dict.fromkeys(result.security_products))
        logger.info(
            "Alternative detection for %s: methods=%s technologies=%d",
            target.hostname,
            ",".join(result.methods_applied) or "none",
            len(result.technologies),
        )
        return result
