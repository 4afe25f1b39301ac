"""Target parsing and responsiveness probing."""

import asyncio
import ipaddress
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from urllib.parse import urlsplit

import httpx

from netsage.exceptions import InvalidTargetError

from .timeouts import Responsiveness

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 5.0
RESPONSIVE_BELOW = 1.0
SLOW_ABOVE = 3.0

DEFAULT_SCHEME_PORTS = {"http": 80, "https": 443}
_TLS_PORTS = {443, 8443}

_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


@dataclass(frozen=True)
class ScanTarget:
    """A normalized scan target."""

    original: str
    hostname: str
    port: int
    protocol: str
    path: str = "/"
    responsiveness: Responsiveness = Responsiveness.NORMAL
    explicit_port: bool = False

    @property
    def base_url(self) -> str:
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        if DEFAULT_SCHEME_PORTS.get(self.protocol) == self.port:
            return f"{self.protocol}://{host}"
        return f"{self.protocol}://{host}:{self.port}"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    @property
    def is_tls(self) -> bool:
        return self.protocol == "https"

    def with_responsiveness(self, category: Responsiveness) -> "ScanTarget":
        return replace(self, responsiveness=category)

    def to_dict(self) -> dict[str, object]:
        return {
            "original": self.original,
            "hostname": self.hostname,
            "port": self.port,
            "protocol": self.protocol,
            "path": self.path,
            "url": self.url,
            "responsiveness": self.responsiveness.value,
        }


def _valid_hostname(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        pass
    if len(hostname) > 253:
        return False
    labels = hostname.rstrip(".").split(".")
    return all(_HOST_LABEL.match(label) for label in labels)


def resolve_target(raw: str) -> ScanTarget:
    """
    Parse a hostname, ``host:port`` or URL into a ScanTarget.

    Bare hosts default to http (https when the port is 443 or 8443).

    Raises:
        InvalidTargetError: empty input, unsupported scheme, bad port or hostname.
    """
    if raw is None or not str(raw).strip():
        raise InvalidTargetError("Target must not be empty")
    text = str(raw).strip()

    has_scheme = "://" in text
    parts = urlsplit(text if has_scheme else f"//{text}")
    scheme = parts.scheme.lower() if has_scheme else ""
    if has_scheme and scheme not in DEFAULT_SCHEME_PORTS:
        raise InvalidTargetError(f"Unsupported scheme {parts.scheme!r} in target {text!r}")

    try:
        port = parts.port
    except ValueError as exc:
        raise InvalidTargetError(f"Invalid port in target {text!r}") from exc
    if port is not None and not 0 < port < 65536:
        raise InvalidTargetError(f"Port out of range in target {text!r}")

    hostname = (parts.hostname or "").lower()
    if not hostname or not _valid_hostname(hostname):
        raise InvalidTargetError(f"Invalid hostname in target {text!r}")

    if not scheme:
        scheme = "https" if port in _TLS_PORTS else "http"
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"

    return ScanTarget(
        original=text,
        hostname=hostname,
        port=port or DEFAULT_SCHEME_PORTS[scheme],
        protocol=scheme,
        path=path,
        explicit_port=port is not None,
    )


def categorize_latency(seconds: float) -> Responsiveness:
    """Bucket a probe round-trip time."""
    if seconds < RESPONSIVE_BELOW:
        return Responsiveness.RESPONSIVE
    if seconds > SLOW_ABOVE:
        return Responsiveness.SLOW
    return Responsiveness.NORMAL


Fetcher = Callable[[str, float], Awaitable[object]]


async def _direct_fetch(url: str, timeout: float) -> object:
    async with httpx.AsyncClient(timeout=timeout, verify=False, follow_redirects=False) as client:
        return await client.get(url)


async def probe_responsiveness(
    target: ScanTarget,
    fetch: Fetcher | None = None,
    timeout: float = PROBE_TIMEOUT,
) -> Responsiveness:
    """
    Time one HTTP GET to the target and bucket the latency.

    Any response (whatever its status) counts. The whole fetch is capped at
    PROBE_TIMEOUT; a failed or timed-out probe yields SLOW.
    """
    fetch = fetch or _direct_fetch
    timeout = min(timeout, PROBE_TIMEOUT)
    started = time.perf_counter()
    try:
        await asyncio.wait_for(fetch(target.url, timeout), timeout=timeout)
    except Exception as exc:
        logger.info("Responsiveness probe to %s failed (%s); assuming slow", target.url, exc)
        return Responsiveness.SLOW
    elapsed = time.perf_counter() - started
    category = categorize_latency(elapsed)
    logger.debug("Probe %s answered in %.3fs -> %s", target.url, elapsed, category)
    return category
