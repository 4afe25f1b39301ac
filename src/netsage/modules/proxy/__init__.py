"""Egress proxy rotation and connection pooling."""

from .endpoints import TOR_PROXY, USER_AGENTS, ProxyEndpoint, UserAgentRotator, parse_proxy
from .manager import PROXY_TEST_URL, ProxyManager
from .pool import DIRECT_KEY, ConnectionPool

__all__ = [
    "ConnectionPool",
    "DIRECT_KEY",
    "PROXY_TEST_URL",
    "ProxyEndpoint",
    "ProxyManager",
    "TOR_PROXY",
    "USER_AGENTS",
    "UserAgentRotator",
    "parse_proxy",
]
