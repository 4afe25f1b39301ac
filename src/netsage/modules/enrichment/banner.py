"""Raw socket banner grabbing."""

import asyncio
import logging
import re
import ssl
import time

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0
READ_CHUNK = 1024
MAX_BANNER_CHARS = 500
# Any banner longer than this is considered complete.
ENOUGH_CHARS = 200

TLS_PORTS = {443, 465, 636, 993, 995, 8443}
TLS_SERVICES = {"https", "ftps", "smtps", "imaps", "pop3s", "ldaps"}

_HTTP_PROBE = (
    "GET / HTTP/1.1\r\n"
    "Host: {host}\r\n"
    "User-Agent: Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36\r\n"
    "Accept: */*\r\n"
    "Connection: close\r\n\r\n"
)

# Services not listed here speak first (ftp, ssh, pop3, imap, telnet...).
SERVICE_PROBES = {
    "http": _HTTP_PROBE,
    "https": _HTTP_PROBE,
    "http-alt": _HTTP_PROBE,
    "http-proxy": _HTTP_PROBE,
    "smtp": "EHLO netsage.scanner\r\n",
    "submission": "EHLO netsage.scanner\r\n",
}

# Control characters other than TAB, CR and LF.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_BANNER_SIGNATURES = [
    ("ssh", re.compile(r"SSH-[\d.]+-([A-Za-z]+)[_-]?([\w.]+)?")),
    ("ftp", re.compile(r"220[ -].*?\(?(vsFTPd|ProFTPD|Pure-FTPd|FileZilla Server)[ ]?([\d.]+[a-z]?)?", re.I)),
    ("smtp", re.compile(r"220[ -]\S+ E?SMTP (Postfix|Exim|Sendmail|Microsoft ESMTP MAIL Service)[ ]?([\d.]+)?", re.I)),
    ("http", re.compile(r"^Server:\s*([^/\s\r\n]+)(?:/([\w.\-]+))?", re.I | re.M)),
]  # fmt: skip


def _service_name(service: str) -> str:
    return (service or "").strip().lower()


def is_http_service(service: str) -> bool:
    return _service_name(service).startswith("http")


def should_use_tls(port: int, service: str = "") -> bool:
    """TLS for well-known encrypted ports or services whose name implies encryption."""
    if port in TLS_PORTS:
        return True
    name = _service_name(service)
    return name in TLS_SERVICES or "ssl" in name or "tls" in name


def probe_for_service(service: str, host: str) -> str:
    probe = SERVICE_PROBES.get(_service_name(service), "")
    return probe.format(host=host) if probe else ""


def banner_complete(banner: str, service: str) -> bool:
    """Per-protocol heuristic for when enough of a banner has been read."""
    if not banner:
        return False
    if len(banner) > ENOUGH_CHARS:
        return True
    name = _service_name(service)
    if is_http_service(name):
        return "\r\n\r\n" in banner and len(banner) > 100
    if name == "ftp":
        return "220 " in banner
    if name == "ssh":
        return "SSH" in banner
    return len(banner) >= 50


def normalize_banner(banner: str, service: str = "") -> str:
    """
    Strip control bytes (keeping TAB/CR/LF), keep only the header block for HTTP,
    cap the length and trim whitespace. Applying it twice changes nothing.
    """
    if not banner:
        return ""
    cleaned = _CONTROL_CHARS.sub("", banner).strip()
    if is_http_service(service):
        header_end = cleaned.find("\r\n\r\n")
        if header_end > 0:
            cleaned = cleaned[:header_end]
    return cleaned[:MAX_BANNER_CHARS].strip()


def identify_banner(banner: str) -> tuple[str, str, str] | None:
    """Return (service, product, version) when the banner carries a known signature."""
    for service, pattern in _BANNER_SIGNATURES:
        match = pattern.search(banner or "")
        if match:
            return service, match.group(1), match.group(2) or ""
    return None


def _tls_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class BannerGrabber:
    """Connects to TCP services and reads what they announce."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, use_tls: bool = True):
        self.timeout = timeout
        self.use_tls = use_tls

    async def _read(self, reader: asyncio.StreamReader, service: str, deadline: float) -> str:
        chunks: list[str] = []
        banner = ""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                data = await asyncio.wait_for(reader.read(READ_CHUNK), timeout=remaining)
            except TimeoutError:
                break
            if not data:
                break
            chunks.append(data.decode("utf-8", errors="replace"))
            banner = "".join(chunks)
            if banner_complete(banner, service):
                break
        return banner

    async def grab(self, host: str, port: int, service: str = "") -> str:
        """Return the cleaned banner, or "" when nothing could be read."""
        context = _tls_context() if self.use_tls and should_use_tls(port, service) else None
        deadline = time.monotonic() + self.timeout
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=context), timeout=self.timeout
            )
        except (OSError, TimeoutError, ssl.SSLError) as exc:
            logger.debug("Banner connect to %s:%d failed: %s", host, port, exc)
            return ""

        try:
            probe = probe_for_service(service, host)
            if probe:
                writer.write(probe.encode())
                await writer.drain()
            raw = await self._read(reader, service, deadline)
        except (OSError, ssl.SSLError) as exc:
            logger.debug("Banner read from %s:%d failed: %s", host, port, exc)
            raw = ""
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError):
                pass
        return normalize_banner(raw, service)

    async def grab_many(
        self, host: str, ports: list[tuple[int, str]], concurrency: int = 10
    ) -> dict[int, str]:
        """Grab banners for (port, service) pairs concurrently; empty banners are dropped."""
        semaphore = asyncio.Semaphore(concurrency)

        async def _one(port: int, service: str) -> tuple[int, str]:
            async with semaphore:
                return port, await self.grab(host, port, service)

        results = await asyncio.gather(*(_one(port, service) for port, service in ports))
        return {port: banner for port, banner in results if banner}
