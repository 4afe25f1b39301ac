"""Proxy rotation, proxied requests and proxy validation."""

import asyncio
import logging
from typing import Any

import httpx

from netsage.tools.http import HTTPClient, HTTPResponse

from .endpoints import TOR_PROXY, ProxyEndpoint, UserAgentRotator, parse_proxy
from .pool import ClientFactory, ConnectionPool

logger = logging.getLogger(__name__)

PROXY_TEST_URL = "http://httpbin.org/ip"
PROXY_TEST_TIMEOUT = 10.0

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Upgrade-Insecure-Requests": "1",
}


class ProxyManager:
    """
    Routes outbound HTTP requests through rotating proxies.

    With no proxies configured every request goes direct. Otherwise requests
    round-robin over the configured endpoints (plus Tor when enabled), each
    attempt on a proxy not yet tried for that request, with linear backoff
    between attempts and an optional final direct attempt.
    """

    def __init__(
        self,
        proxies: list[ProxyEndpoint] | None = None,
        use_tor: bool = False,
        allow_direct_fallback: bool = True,
        rotate_user_agents: bool = True,
        max_pool_size: int = 10,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client_factory: ClientFactory | None = None,
    ):
        self.proxies = list(proxies or [])
        self.use_tor = use_tor
        self.allow_direct_fallback = allow_direct_fallback
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.user_agents = UserAgentRotator(rotate=rotate_user_agents)
        self.pool = ConnectionPool(
            max_size=max_pool_size,
            factory=client_factory or self._make_client,
        )
        self.proxy_index = 0
        self.failed: list[ProxyEndpoint] = []

    @classmethod
    def from_urls(cls, urls: list[str], **kwargs: Any) -> "ProxyManager":
        """Build a manager from proxy URL strings, skipping unparsable entries."""
        endpoints = []
        for url in urls:
            try:
                endpoints.append(parse_proxy(url))
            except ValueError as exc:
                logger.warning("Ignoring proxy %r: %s", url, exc)
        return cls(endpoints, **kwargs)

    def _make_client(self, endpoint: ProxyEndpoint | None) -> HTTPClient:
        return HTTPClient(timeout=self.timeout, proxy=endpoint.url if endpoint else None)

    @property
    def enabled(self) -> bool:
        return bool(self.rotation)

    @property
    def rotation(self) -> list[ProxyEndpoint]:
        endpoints = list(self.proxies)
        if self.use_tor:
            endpoints.append(TOR_PROXY)
        return endpoints

    def next_proxy(self) -> ProxyEndpoint | None:
        """Return the next endpoint in round-robin order, or None when none are configured."""
        rotation = self.rotation
        if not rotation:
            return None
        endpoint = rotation[self.proxy_index % len(rotation)]
        self.proxy_index += 1
        return endpoint

    def next_user_agent(self) -> str:
        return self.user_agents.next()

    def _headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {"User-Agent": self.next_user_agent(), **BROWSER_HEADERS}
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        endpoint: ProxyEndpoint | None,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        timeout: float | None,
    ) -> HTTPResponse:
        async with self.pool.checkout(endpoint) as client:
            return await client.request(method, url, headers=self._headers(headers), timeout=timeout)

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Send a request via the proxy rotation, falling back to direct when allowed."""
        if not self.enabled:
            return await self._send(None, method, url, headers, timeout)

        last_error: Exception | None = None
        tried: set[str] = set()
        for attempt in range(self.max_retries):
            endpoint = self.next_proxy()
            if endpoint is None or endpoint.key in tried:
                continue
            tried.add(endpoint.key)
            logger.debug("Request to %s via %s (attempt %d)", url, endpoint.key, attempt + 1)
            try:
                return await self._send(endpoint, method, url, headers, timeout)
            except httpx.HTTPError as exc:
                last_error = exc
                logger.info("Request via %s failed: %s", endpoint.key, exc)
                if attempt < self.max_retries - 1 and self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))

        if self.allow_direct_fallback:
            logger.info("All proxy attempts failed, trying direct connection to %s", url)
            return await self._send(None, method, url, headers, timeout)

        if last_error is not None:
            raise last_error
        raise httpx.ConnectError(f"No usable proxy for {url}")

    async def get(self, url: str, timeout: float | None = None) -> HTTPResponse:
        return await self.request(url, timeout=timeout)

    async def request_once(self, url: str, timeout: float | None = None) -> HTTPResponse:
        """GET through the next endpoint in rotation (direct when none), with no retry or fallback."""
        return await self._send(self.next_proxy(), "GET", url, None, timeout)

    async def test_proxy(self, endpoint: ProxyEndpoint, test_url: str = PROXY_TEST_URL) -> bool:
        """Return True when a GET through ``endpoint`` to ``test_url`` answers 200."""
        try:
            response = await self._send(endpoint, "GET", test_url, None, PROXY_TEST_TIMEOUT)
        except httpx.HTTPError as exc:
            logger.info("Proxy test failed for %s: %s", endpoint.key, exc)
            return False
        return response.status_code == 200

    async def validate(self, test_url: str = PROXY_TEST_URL) -> list[ProxyEndpoint]:
        """Test every configured proxy (and Tor) concurrently and keep only working ones."""
        results = await asyncio.gather(*(self.test_proxy(p, test_url) for p in self.proxies))
        working = [proxy for proxy, ok in zip(self.proxies, results, strict=True) if ok]
        self.failed = [proxy for proxy, ok in zip(self.proxies, results, strict=True) if not ok]
        for proxy in self.failed:
            logger.warning("Discarding proxy %s: connectivity test failed", proxy.key)
        if self.use_tor and not await self.test_proxy(TOR_PROXY, test_url):
            logger.warning("Tor proxy %s is not reachable; disabling it", TOR_PROXY.key)
            self.use_tor = False
        self.proxies = working
        logger.info("Proxy validation complete: %d working", len(working))
        return working

    def nmap_script_args(self) -> list[str]:
        """Script arguments that carry the rotating user agent (and HTTP proxy) into NSE."""
        parts = [f"http.useragent={self.next_user_agent()}"]
        http_proxies = [p for p in self.proxies if p.is_http]
        if http_proxies:
            parts.append(f"http.proxy={http_proxies[0].host}:{http_proxies[0].port}")
        return ["--script-args", ",".join(parts)]

    def stats(self) -> dict[str, Any]:
        return {
            "total": len(self.proxies) + len(self.failed),
            "working": len(self.proxies),
            "failed": len(self.failed),
            "tor_enabled": self.use_tor,
            "current_index": self.proxy_index,
            "user_agent_rotation": self.user_agents.rotate,
            "pool_sizes": self.pool.sizes(),
        }

    async def aclose(self) -> None:
        await self.pool.aclose()
