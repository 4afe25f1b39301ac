"""Tests for proxy parsing, pooling and rotation."""

import asyncio

import httpx
import pytest

from netsage.modules.proxy import (
    DIRECT_KEY,
    PROXY_TEST_URL,
    TOR_PROXY,
    USER_AGENTS,
    ConnectionPool,
    ProxyManager,
    UserAgentRotator,
    parse_proxy,
)
from netsage.tools.http import HTTPResponse


class FakeClient:
    """Stands in for HTTPClient; fails when its proxy identity is in ``failing``."""

    def __init__(self, endpoint, failing=(), calls=None):
        self.endpoint = endpoint
        self.failing = set(failing)
        self.calls = calls if calls is not None else []
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True
        return self

    async def close(self):
        self.closed = True

    @property
    def is_closed(self):
        return self.closed

    async def request(self, method, url, headers=None, timeout=None):
        key = self.endpoint.key if self.endpoint else DIRECT_KEY
        self.calls.append((key, method, url, headers))
        if key in self.failing:
            raise httpx.ConnectError(f"proxy {key} refused")
        return HTTPResponse(
            url=url,
            status_code=200,
            headers={},
            body="ok",
            cookies={},
            response_time=0.01,
        )


def make_factory(failing=(), calls=None, created=None):
    def factory(endpoint):
        client = FakeClient(endpoint, failing, calls)
        if created is not None:
            created.append(client)
        return client

    return factory


# ── Parsing ──────────────────────────────────────────────────────────────


class TestParseProxy:
    def test_scheme_defaults_to_http(self):
        endpoint = parse_proxy("10.0.0.1:3128")
        assert endpoint.scheme == "http"
        assert endpoint.key == "http://10.0.0.1:3128"

    def test_credentials_kept_out_of_key(self):
        endpoint = parse_proxy("socks5://user:p@ss@proxy.local:1080")
        assert endpoint.username == "user"
        assert endpoint.key == "socks5://proxy.local:1080"
        assert endpoint.url.startswith("socks5://user:")
        assert "%40" in endpoint.url

    @pytest.mark.parametrize("value", ["ftp://proxy:21", "http://proxy", "http://proxy:notaport"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_proxy(value)

    def test_tor_endpoint(self):
        assert TOR_PROXY.key == "socks5://127.0.0.1:9050"
        assert TOR_PROXY.is_tor


class TestUserAgentRotator:
    def test_round_robin(self):
        rotator = UserAgentRotator(["a", "b"])
        assert [rotator.next() for _ in range(3)] == ["a", "b", "a"]

    def test_rotation_disabled(self):
        rotator = UserAgentRotator(rotate=False)
        assert rotator.next() == rotator.next() == USER_AGENTS[0]


# ── Pool ─────────────────────────────────────────────────────────────────


class TestConnectionPool:
    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            ConnectionPool(max_size=0)

    @pytest.mark.asyncio
    async def test_reuses_idle_clients(self):
        created = []
        pool = ConnectionPool(max_size=2, factory=make_factory(created=created))
        async with pool.checkout(None) as first:
            pass
        async with pool.checkout(None) as second:
            pass
        assert first is second
        assert len(created) == 1
        assert pool.sizes() == {DIRECT_KEY: 1}

    @pytest.mark.asyncio
    async def test_checkouts_bounded_per_identity(self):
        pool = ConnectionPool(max_size=2, factory=make_factory())
        active = 0
        peak = 0

        async def borrow():
            nonlocal active, peak
            async with pool.checkout(None):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(borrow() for _ in range(6)))
        assert peak == 2
        assert pool.in_use() == {DIRECT_KEY: 0}
        assert pool.sizes()[DIRECT_KEY] <= 2

    @pytest.mark.asyncio
    async def test_failed_client_is_discarded(self):
        created = []
        pool = ConnectionPool(max_size=2, factory=make_factory(created=created))
        with pytest.raises(RuntimeError):
            async with pool.checkout(None):
                raise RuntimeError("transport broke")
        assert created[0].closed
        assert pool.sizes() == {DIRECT_KEY: 0}

    @pytest.mark.asyncio
    async def test_aclose_closes_idle(self):
        created = []
        pool = ConnectionPool(max_size=2, factory=make_factory(created=created))
        async with pool.checkout(parse_proxy("http://p:1")):
            pass
        await pool.aclose()
        assert created[0].closed
        assert pool.sizes() == {"http://p:1": 0}


# ── Manager ──────────────────────────────────────────────────────────────


class TestProxyManager:
    @pytest.mark.asyncio
    async def test_no_proxies_goes_direct(self):
        calls = []
        manager = ProxyManager(client_factory=make_factory(calls=calls))
        assert not manager.enabled
        response = await manager.get("http://example.com/")
        assert response.status_code == 200
        assert calls[0][0] == DIRECT_KEY
        assert "User-Agent" in calls[0][3]

    @pytest.mark.asyncio
    async def test_round_robin_rotation(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://p1:8080", "http://p2:8080"], client_factory=make_factory(calls=calls)
        )
        await manager.get("http://example.com/")
        await manager.get("http://example.com/")
        await manager.get("http://example.com/")
        assert [call[0] for call in calls] == ["http://p1:8080", "http://p2:8080", "http://p1:8080"]

    @pytest.mark.asyncio
    async def test_tor_joins_rotation(self):
        manager = ProxyManager(use_tor=True)
        assert manager.enabled
        assert manager.next_proxy() == TOR_PROXY

    @pytest.mark.asyncio
    async def test_failover_to_next_proxy(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://p1:8080", "http://p2:8080"],
            retry_delay=0,
            client_factory=make_factory(failing={"http://p1:8080"}, calls=calls),
        )
        response = await manager.get("http://example.com/")
        assert response.status_code == 200
        assert [call[0] for call in calls] == ["http://p1:8080", "http://p2:8080"]

    @pytest.mark.asyncio
    async def test_direct_fallback_after_all_proxies_fail(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://p1:8080", "http://p2:8080"],
            retry_delay=0,
            client_factory=make_factory(failing={"http://p1:8080", "http://p2:8080"}, calls=calls),
        )
        response = await manager.get("http://example.com/")
        assert response.status_code == 200
        assert calls[-1][0] == DIRECT_KEY

    @pytest.mark.asyncio
    async def test_no_fallback_raises_last_error(self):
        manager = ProxyManager.from_urls(
            ["http://p1:8080"],
            allow_direct_fallback=False,
            retry_delay=0,
            client_factory=make_factory(failing={"http://p1:8080"}),
        )
        with pytest.raises(httpx.ConnectError, match="p1"):
            await manager.get("http://example.com/")

    @pytest.mark.asyncio
    async def test_each_proxy_tried_once_per_request(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://p1:8080"],
            allow_direct_fallback=False,
            max_retries=3,
            retry_delay=0,
            client_factory=make_factory(failing={"http://p1:8080"}, calls=calls),
        )
        with pytest.raises(httpx.ConnectError):
            await manager.get("http://example.com/")
        assert len(calls) == 1

    def test_from_urls_skips_invalid(self):
        manager = ProxyManager.from_urls(["ftp://nope:21", "http://ok:3128"])
        assert [p.key for p in manager.proxies] == ["http://ok:3128"]

    def test_nmap_script_args(self):
        manager = ProxyManager.from_urls(
            ["socks5://s:1080", "http://h:3128"], rotate_user_agents=False
        )
        flag, value = manager.nmap_script_args()
        assert flag == "--script-args"
        assert value == f"http.useragent={USER_AGENTS[0]},http.proxy=h:3128"

    @pytest.mark.asyncio
    async def test_validate_drops_failing_proxies(self, monkeypatch):
        manager = ProxyManager.from_urls(["http://good:1", "http://bad:1"], use_tor=True)

        async def fake_test(endpoint, test_url="http://httpbin.org/ip"):
            return endpoint.host == "good"

        monkeypatch.setattr(manager, "test_proxy", fake_test)
        working = await manager.validate()
        assert [p.key for p in working] == ["http://good:1"]
        assert manager.use_tor is False
        stats = manager.stats()
        assert stats["total"] == 2
        assert stats["working"] == 1
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_validate_without_proxies(self):
        assert await ProxyManager().validate() == []

    @pytest.mark.asyncio
    async def test_validate_tests_through_the_pool(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://good:1", "http://bad:1"],
            client_factory=make_factory(failing={"http://bad:1"}, calls=calls),
        )
        working = await manager.validate()
        assert [p.key for p in working] == ["http://good:1"]
        assert sorted((key, url) for key, _, url, _ in calls) == [
            ("http://bad:1", PROXY_TEST_URL),
            ("http://good:1", PROXY_TEST_URL),
        ]

    @pytest.mark.asyncio
    async def test_validate_checks_tor_alone(self):
        manager = ProxyManager(use_tor=True, client_factory=make_factory(failing={TOR_PROXY.key}))
        assert await manager.validate() == []
        assert manager.use_tor is False
        assert not manager.enabled

    @pytest.mark.asyncio
    async def test_request_once_makes_a_single_attempt(self):
        calls = []
        manager = ProxyManager.from_urls(
            ["http://p1:8080", "http://p2:8080"],
            retry_delay=0,
            client_factory=make_factory(failing={"http://p1:8080"}, calls=calls),
        )
        with pytest.raises(httpx.ConnectError):
            await manager.request_once("http://example.com/", timeout=5)
        assert [call[0] for call in calls] == ["http://p1:8080"]
        response = await manager.request_once("http://example.com/")
        assert response.status_code == 200
        assert calls[-1][0] == "http://p2:8080"

    @pytest.mark.asyncio
    async def test_request_once_goes_direct_without_proxies(self):
        calls = []
        manager = ProxyManager(client_factory=make_factory(calls=calls))
        await manager.request_once("http://example.com/")
        assert calls[0][0] == DIRECT_KEY
