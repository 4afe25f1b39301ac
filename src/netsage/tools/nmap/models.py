"""Nmap result and request types."""

from dataclasses import dataclass, field
from enum import StrEnum


class ScanMethod(StrEnum):
    SYN = "syn"
    CONNECT = "connect"
    UDP = "udp"

    @property
    def flag(self) -> str:
        return {"syn": "-sS", "connect": "-sT", "udp": "-sU"}[self.value]

    @property
    def raw_packets(self) -> bool:
        return self is not ScanMethod.CONNECT


@dataclass
class PortScanResult:
    """Represents a single port scan result."""

    port: int
    protocol: str
    state: str
    service: str
    version: str = ""
    product: str = ""
    extra_info: str = ""
    scripts: dict[str, str] = field(default_factory=dict)


@dataclass
class HostResult:
    """Represents a single host scan result."""

    ip: str
    hostname: str = ""
    status: str = ""
    ports: list[PortScanResult] = field(default_factory=list)


@dataclass
class NmapRequest:
    """One nmap invocation. ``host_timeout`` is in seconds."""

    target: str
    method: ScanMethod = ScanMethod.SYN
    ports: str | None = None
    fast: bool = False
    version_detection: bool = True
    version_intensity: int | None = None
    default_scripts: bool = False
    scripts: list[str] = field(default_factory=list)
    host_timeout: float | None = None
    max_retries: int = 2
    timing: int = 3
    min_rate: int | None = None
    extra_args: list[str] = field(default_factory=list)
