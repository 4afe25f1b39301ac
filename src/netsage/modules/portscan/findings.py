"""Port findings and the de-duplicating collection they accumulate in."""

from dataclasses import dataclass, field
from typing import Any

from netsage.tools.nmap import PortScanResult

PORT_STATES = ("open", "closed", "filtered", "unknown")

# Higher rank wins when two sources disagree about a port's state.
_STATE_RANK = {"open": 3, "filtered": 2, "closed": 1, "unknown": 0}


def normalize_state(state: str) -> str:
    """Collapse nmap states (open|filtered, closed|filtered, ...) to the four kept here."""
    value = (state or "").strip().lower()
    if value in PORT_STATES:
        return value
    if value.startswith("open"):
        return "open"
    if "filtered" in value:
        return "filtered"
    return "unknown"


@dataclass
class PortFinding:
    """One (port, transport) pair and what is known about it."""

    port: int
    transport: str = "tcp"
    service: str = ""
    product: str = ""
    version: str = ""
    state: str = "unknown"
    banner: str = ""
    extra_info: str = ""
    scripts: dict[str, str] = field(default_factory=dict)
    detection_method: str = ""

    @property
    def key(self) -> tuple[int, str]:
        return (self.port, self.transport)

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @classmethod
    def from_nmap(cls, result: PortScanResult, detection_method: str) -> "PortFinding":
        return cls(
            port=result.port,
            transport=(result.protocol or "tcp").lower(),
            service=result.service,
            product=result.product,
            version=result.version,
            state=normalize_state(result.state),
            extra_info=result.extra_info,
            scripts=dict(result.scripts),
            detection_method=detection_method,
        )

    def absorb(self, other: "PortFinding") -> None:
        """Merge another finding for the same key into this one; known values are kept."""
        if _STATE_RANK.get(other.state, 0) > _STATE_RANK.get(self.state, 0):
            self.state = other.state
        for attr in ("service", "product", "version", "banner", "extra_info", "detection_method"):
            if not getattr(self, attr) and getattr(other, attr):
                setattr(self, attr, getattr(other, attr))
        for script_id, output in other.scripts.items():
            self.scripts.setdefault(script_id, output)

    def display_version(self) -> str:
        return " ".join(part for part in (self.product, self.version) if part)

    def to_dict(self) -> dict[str, Any]:
        return {
            "port": self.port,
            "protocol": self.transport,
            "service": self.service or "unknown",
            "product": self.product or None,
            "version": self.display_version() or None,
            "state": self.state,
            "banner": self.banner or None,
            "script_results": dict(self.scripts),
            "detection_method": self.detection_method or None,
        }


class PortCollection:
    """Findings keyed by (port, transport). Adding a known key merges into it."""

    def __init__(self) -> None:
        self._items: dict[tuple[int, str], PortFinding] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self.all())

    def __contains__(self, key: tuple[int, str]) -> bool:
        return key in self._items

    def get(self, port: int, transport: str = "tcp") -> PortFinding | None:
        return self._items.get((port, transport))

    def add(self, finding: PortFinding) -> PortFinding:
        existing = self._items.get(finding.key)
        if existing is None:
            self._items[finding.key] = finding
            return finding
        existing.absorb(finding)
        return existing

    def extend(self, findings) -> None:
        for finding in findings:
            self.add(finding)

    def enrich(
        self,
        port: int,
        transport: str = "tcp",
        *,
        service: str = "",
        product: str = "",
        version: str = "",
        banner: str = "",
        scripts: dict[str, str] | None = None,
    ) -> bool:
        """Upgrade an existing finding in place. Unknown ports are ignored (returns False)."""
        existing = self._items.get((port, transport))
        if existing is None:
            return False
        if service and (not existing.service or existing.service in ("unknown", "tcpwrapped")):
            existing.service = service
        if product and not existing.product:
            existing.product = product
        if version and not existing.version:
            existing.version = version
        if banner and not existing.banner:
            existing.banner = banner
        for script_id, output in (scripts or {}).items():
            existing.scripts[script_id] = output
        return True

    def all(self) -> list[PortFinding]:
        return sorted(self._items.values(), key=lambda f: (f.transport, f.port))

    def open_ports(self, transport: str | None = None) -> list[PortFinding]:
        return [
            f for f in self.all() if f.is_open and (transport is None or f.transport == transport)
        ]
