"""Tests for target parsing and the responsiveness probe."""

import asyncio
import time

import httpx
import pytest
import respx

from netsage.exceptions import InvalidTargetError
from netsage.modules.target import categorize_latency, probe_responsiveness, resolve_target
from netsage.modules.timeouts import Responsiveness


# ── Parsing ──────────────────────────────────────────────────────────────


class TestResolveTarget:
    def test_bare_host_defaults_to_http(self):
        target = resolve_target("Example.COM")
        assert target.hostname == "example.com"
        assert target.protocol == "http"
        assert target.port == 80
        assert target.url == "http://example.com/"
        assert not target.explicit_port

    @pytest.mark.parametrize("port", [443, 8443])
    def test_tls_ports_default_to_https(self, port):
        target = resolve_target(f"example.com:{port}")
        assert target.protocol == "https"
        assert target.port == port
        assert target.explicit_port
        assert target.is_tls

    def test_url_with_path_and_query(self):
        target = resolve_target("https://example.com:8080/app?x=1")
        assert target.port == 8080
        assert target.path == "/app?x=1"
        assert target.base_url == "https://example.com:8080"

    def test_default_port_from_scheme(self):
        assert resolve_target("https://example.com").port == 443

    def test_ip_addresses(self):
        assert resolve_target("10.0.0.5").hostname == "10.0.0.5"
        target = resolve_target("http://[::1]:8080/")
        assert target.hostname == "::1"
        assert target.base_url == "http://[::1]:8080"

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "ftp://example.com",
            "example.com:99999",
            "example.com:abc",
            "http://",
            "bad_host!.com",
            "-leading.example.com",
        ],
    )
    def test_invalid_targets(self, raw):
        with pytest.raises(InvalidTargetError):
            resolve_target(raw)

    def test_invalid_target_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_target("ftp://example.com")

    def test_to_dict(self):
        data = resolve_target("example.com").with_responsiveness(Responsiveness.SLOW).to_dict()
        assert data["url"] == "http://example.com/"
        assert data["responsiveness"] == "slow"


# ── Responsiveness ───────────────────────────────────────────────────────


class TestCategorizeLatency:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0.2, Responsiveness.RESPONSIVE),
            (1.0, Responsiveness.NORMAL),
            (3.0, Responsiveness.NORMAL),
            (3.5, Responsiveness.SLOW),
        ],
    )
    def test_buckets(self, seconds, expected):
        assert categorize_latency(seconds) is expected


class TestProbe:
    @respx.mock
    @pytest.mark.asyncio
    async def test_fast_response_is_responsive(self):
        respx.get("http://example.com/").mock(return_value=httpx.Response(200))
        result = await probe_responsiveness(resolve_target("example.com"))
        assert result is Responsiveness.RESPONSIVE

    @respx.mock
    @pytest.mark.asyncio
    async def test_any_status_counts(self):
        respx.get("http://example.com/").mock(return_value=httpx.Response(503))
        result = await probe_responsiveness(resolve_target("example.com"))
        assert result is Responsiveness.RESPONSIVE

    @respx.mock
    @pytest.mark.asyncio
    async def test_failure_is_slow(self):
        respx.get("http://example.com/").mock(side_effect=httpx.ConnectError("refused"))
        result = await probe_responsiveness(resolve_target("example.com"))
        assert result is Responsiveness.SLOW

    @pytest.mark.asyncio
    async def test_custom_fetch_receives_capped_timeout(self):
        seen = {}

        async def fetch(url, timeout):
            seen["url"] = url
            seen["timeout"] = timeout

        await probe_responsiveness(resolve_target("example.com"), fetch=fetch, timeout=30)
        assert seen == {"url": "http://example.com/", "timeout": 5.0}

    @pytest.mark.asyncio
    async def test_timeout_is_slow(self):
        async def fetch(url, timeout):
            raise asyncio.TimeoutError()

        result = await probe_responsiveness(resolve_target("example.com"), fetch=fetch)
        assert result is Responsiveness.SLOW

    @pytest.mark.asyncio
    async def test_slow_fetch_is_cut_off_at_the_cap(self):
        async def fetch(url, timeout):
            await asyncio.sleep(30)

        started = time.perf_counter()
        result = await probe_responsiveness(resolve_target("example.com"), fetch=fetch, timeout=0.2)
        assert result is Responsiveness.SLOW
        assert time.perf_counter() - started < 5
