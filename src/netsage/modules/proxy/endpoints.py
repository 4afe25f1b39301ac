"""Proxy endpoint parsing and user-agent rotation."""

from dataclasses import dataclass
from urllib.parse import quote, urlsplit

SUPPORTED_SCHEMES = {"http", "https", "socks5", "socks5h"}

USER_AGENTS = [
    # Chrome
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Safari/605.1.15",
    # Edge
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
]  # fmt: skip


@dataclass(frozen=True)
class ProxyEndpoint:
    """A single egress proxy."""

    scheme: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None
    is_tor: bool = False

    @property
    def key(self) -> str:
        """Pool identity; credentials are not part of it."""
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def url(self) -> str:
        auth = ""
        if self.username:
            auth = quote(self.username, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"{self.scheme}://{auth}{self.host}:{self.port}"

    @property
    def is_http(self) -> bool:
        return self.scheme in ("http", "https")

    def to_dict(self) -> dict[str, object]:
        return {"scheme": self.scheme, "host": self.host, "port": self.port, "tor": self.is_tor}


TOR_PROXY = ProxyEndpoint(scheme="socks5", host="127.0.0.1", port=9050, is_tor=True)


def parse_proxy(value: str) -> ProxyEndpoint:
    """
    Parse ``scheme://[user:pass@]host:port`` (scheme defaults to http).

    Raises ValueError for unsupported schemes or a missing host/port.
    """
    text = value.strip()
    if "://" not in text:
        text = f"http://{text}"
    parts = urlsplit(text)
    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ValueError(f"Unsupported proxy scheme: {parts.scheme}")
    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid proxy port in {value!r}") from exc
    if not parts.hostname or port is None:
        raise ValueError(f"Proxy must include host and port: {value!r}")
    return ProxyEndpoint(
        scheme=scheme,
        host=parts.hostname,
        port=port,
        username=parts.username,
        password=parts.password,
    )


class UserAgentRotator:
    """Round-robin over a fixed list of browser user agents."""

    def __init__(self, user_agents: list[str] | None = None, rotate: bool = True):
        self.user_agents = list(user_agents or USER_AGENTS)
        self.rotate = rotate
        self.index = 0

    def next(self) -> str:
        if not self.rotate:
            return self.user_agents[0]
        agent = self.user_agents[self.index % len(self.user_agents)]
        self.index += 1
        return agent
