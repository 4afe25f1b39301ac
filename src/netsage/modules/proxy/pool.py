"""Bounded pool of reusable HTTP client handles keyed by proxy identity."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from netsage.tools.http import HTTPClient

from .endpoints import ProxyEndpoint

logger = logging.getLogger(__name__)

DIRECT_KEY = "direct"

ClientFactory = Callable[[ProxyEndpoint | None], HTTPClient]


def default_client_factory(endpoint: ProxyEndpoint | None, timeout: float = 30.0) -> HTTPClient:
    return HTTPClient(timeout=timeout, proxy=endpoint.url if endpoint else None)


class ConnectionPool:
    """
    Hands out HTTP clients per proxy identity.

    At most ``max_size`` handles per identity are checked out at once; callers
    beyond that wait. Returned handles are kept idle for reuse, also capped at
    ``max_size``.
    """

    def __init__(self, max_size: int = 10, factory: ClientFactory | None = None):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._factory = factory or default_client_factory
        self._idle: dict[str, list[HTTPClient]] = {}
        self._slots: dict[str, asyncio.Semaphore] = {}
        self._in_use: dict[str, int] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def key_for(endpoint: ProxyEndpoint | None) -> str:
        return endpoint.key if endpoint else DIRECT_KEY

    async def _slot(self, key: str) -> asyncio.Semaphore:
        async with self._lock:
            if key not in self._slots:
                self._slots[key] = asyncio.Semaphore(self.max_size)
                self._idle[key] = []
                self._in_use[key] = 0
            return self._slots[key]

    async def _take(self, key: str, endpoint: ProxyEndpoint | None) -> HTTPClient:
        async with self._lock:
            idle = self._idle[key]
            client = idle.pop() if idle else None
            self._in_use[key] += 1
        if client is None or client.is_closed:
            client = self._factory(endpoint)
            await client.open()
        return client

    async def _give_back(self, key: str, client: HTTPClient, discard: bool) -> None:
        async with self._lock:
            self._in_use[key] -= 1
            idle = self._idle[key]
            keep = not discard and not client.is_closed and len(idle) < self.max_size
            if keep:
                idle.append(client)
        if not keep:
            await client.close()

    @asynccontextmanager
    async def checkout(self, endpoint: ProxyEndpoint | None) -> AsyncIterator[HTTPClient]:
        """Borrow a client for ``endpoint`` (None means a direct connection)."""
        key = self.key_for(endpoint)
        slot = await self._slot(key)
        async with slot:
            client = await self._take(key, endpoint)
            discard = False
            try:
                yield client
            except BaseException:
                # A failed transport may be unusable; do not recycle it.
                discard = True
                raise
            finally:
                await self._give_back(key, client, discard)

    def sizes(self) -> dict[str, int]:
        """Idle handle count per identity."""
        return {key: len(clients) for key, clients in self._idle.items()}

    def in_use(self) -> dict[str, int]:
        return dict(self._in_use)

    async def aclose(self) -> None:
        async with self._lock:
            clients = [client for idle in self._idle.values() for client in idle]
            self._idle = {key: [] for key in self._idle}
        for client in clients:
            await client.close()
        logger.debug("Closed %d pooled HTTP clients", len(clients))
