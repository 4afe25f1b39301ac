"""HTTP client used for probing, header analysis and fingerprinting."""

import time
from dataclasses import dataclass

import httpx

# Bodies beyond this are truncated before fingerprinting.
MAX_BODY_CHARS = 512_000


@dataclass
class HTTPResponse:
    """Represents an HTTP response."""

    url: str
    status_code: int
    headers: dict[str, str]
    body: str
    cookies: dict[str, str]
    response_time: float
    content_type: str = ""
    server: str = ""
    reason: str = ""
    http_version: str = ""


class HTTPClient:
    """Async HTTP client bound to one egress identity (direct or a single proxy)."""

    def __init__(
        self,
        timeout: float = 30.0,
        follow_redirects: bool = True,
        verify_ssl: bool = False,
        proxy: str | None = None,
        user_agent: str | None = None,
    ):
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify_ssl = verify_ssl
        self.proxy = proxy
        self.user_agent = user_agent
        self.client: httpx.AsyncClient | None = None

    async def open(self) -> "HTTPClient":
        if self.client is None:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=self.follow_redirects,
                verify=self.verify_ssl,
                proxy=self.proxy,
                headers=headers,
            )
        return self

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    @property
    def is_closed(self) -> bool:
        return self.client is None or self.client.is_closed

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Make an HTTP request."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        start = time.perf_counter()

        response = await self.client.request(
            method=method,
            url=url,
            headers=headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )

        elapsed = time.perf_counter() - start

        return HTTPResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text[:MAX_BODY_CHARS],
            cookies=dict(response.cookies),
            response_time=elapsed,
            content_type=response.headers.get("content-type", ""),
            server=response.headers.get("server", ""),
            reason=response.reason_phrase,
            http_version=response.http_version,
        )

    async def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> HTTPResponse:
        """Make a GET request."""
        return await self.request("GET", url, headers=headers, timeout=timeout)
