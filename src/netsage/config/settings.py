"""Scanner settings and per-scan options."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .env_loader import get_global_config_dir
from .getters import get_bool, get_config, get_int, get_list

DEFAULT_TCP_PORTS = ["21", "22", "25", "80", "443", "3306", "8080", "8443"]
DEFAULT_UDP_PORTS = [
    "53", "67", "68", "69", "123", "137", "138", "139", "161",
    "162", "445", "500", "514", "520", "631", "1434", "1900", "5353",
]  # fmt: skip

EVASION_PROFILES = ("minimal", "moderate", "aggressive")
SEVERITY_TIERS = ("critical", "high", "medium", "low", "info", "all")


@dataclass
class ScanSettings:
    """Resolved scanner configuration. Timeouts are in milliseconds."""

    timeout_ms: int = 30_000
    port_scan_timeout_ms: int = 120_000
    vuln_scan_timeout_ms: int = 300_000
    overall_timeout_ms: int = 600_000
    default_ports: list[str] = field(default_factory=lambda: list(DEFAULT_TCP_PORTS))
    udp_ports: list[str] = field(default_factory=lambda: list(DEFAULT_UDP_PORTS))
    evasion_profile: str = "minimal"
    proxies: list[str] = field(default_factory=list)
    use_tor: bool = False
    allow_direct_fallback: bool = True
    max_pool_size: int = 10
    nuclei_rate_limit: int = 150
    nuclei_concurrency: int = 25
    nuclei_bulk_size: int = 25
    nuclei_retries: int = 1
    nuclei_template_timeout: int = 10
    nuclei_templates_dir: str = ""
    custom_templates_dir: str = ""
    severity: str = "all"
    template_categories: list[str] = field(default_factory=list)
    enable_udp: bool = True
    enable_vuln_scan: bool = True
    enable_waf_check: bool = True
    enable_banner_grab: bool = True
    enable_alternative: bool = True
    comprehensive: bool = False
    aggressive: bool = False
    scan_ttl_seconds: int = 3600

    @property
    def port_list(self) -> str:
        return ",".join(self.default_ports)

    @property
    def udp_port_list(self) -> str:
        return ",".join(self.udp_ports)

    @classmethod
    def load(cls, project_dir: Path | None = None) -> "ScanSettings":
        """Build settings from environment, .env, ~/.netsage/config.yml and defaults."""
        base = cls()
        custom_dir = get_config("NETSAGE_CUSTOM_TEMPLATES_DIR", project_dir) or str(
            get_global_config_dir() / "templates"
        )
        profile = str(get_config("NETSAGE_EVASION_PROFILE", project_dir, base.evasion_profile))
        severity = str(get_config("NETSAGE_SEVERITY", project_dir, base.severity)).lower()
        return cls(
            timeout_ms=get_int("NETSAGE_TIMEOUT_MS", base.timeout_ms, project_dir),
            port_scan_timeout_ms=get_int(
                "NETSAGE_PORT_SCAN_TIMEOUT_MS", base.port_scan_timeout_ms, project_dir
            ),
            vuln_scan_timeout_ms=get_int(
                "NETSAGE_VULN_SCAN_TIMEOUT_MS", base.vuln_scan_timeout_ms, project_dir
            ),
            overall_timeout_ms=get_int(
                "NETSAGE_OVERALL_TIMEOUT_MS", base.overall_timeout_ms, project_dir
            ),
            default_ports=get_list("NETSAGE_DEFAULT_PORTS", base.default_ports, project_dir),
            udp_ports=get_list("NETSAGE_UDP_PORTS", base.udp_ports, project_dir),
            evasion_profile=profile if profile in EVASION_PROFILES else base.evasion_profile,
            proxies=get_list("NETSAGE_PROXIES", [], project_dir),
            use_tor=get_bool("NETSAGE_USE_TOR", base.use_tor, project_dir),
            allow_direct_fallback=get_bool(
                "NETSAGE_ALLOW_DIRECT_FALLBACK", base.allow_direct_fallback, project_dir
            ),
            max_pool_size=get_int("NETSAGE_MAX_POOL_SIZE", base.max_pool_size, project_dir),
            nuclei_rate_limit=get_int("NETSAGE_NUCLEI_RATE_LIMIT", base.nuclei_rate_limit, project_dir),
            nuclei_concurrency=get_int(
                "NETSAGE_NUCLEI_CONCURRENCY", base.nuclei_concurrency, project_dir
            ),
            nuclei_bulk_size=get_int("NETSAGE_NUCLEI_BULK_SIZE", base.nuclei_bulk_size, project_dir),
            nuclei_retries=get_int("NETSAGE_NUCLEI_RETRIES", base.nuclei_retries, project_dir),
            nuclei_template_timeout=get_int(
                "NETSAGE_NUCLEI_TEMPLATE_TIMEOUT", base.nuclei_template_timeout, project_dir
            ),
            nuclei_templates_dir=str(get_config("NETSAGE_NUCLEI_TEMPLATES_DIR", project_dir, "")),
            custom_templates_dir=str(custom_dir),
            severity=severity if severity in SEVERITY_TIERS else base.severity,
            enable_udp=get_bool("NETSAGE_ENABLE_UDP", base.enable_udp, project_dir),
            enable_vuln_scan=get_bool("NETSAGE_ENABLE_VULN_SCAN", base.enable_vuln_scan, project_dir),
            enable_waf_check=get_bool("NETSAGE_ENABLE_WAF_CHECK", base.enable_waf_check, project_dir),
            enable_banner_grab=get_bool(
                "NETSAGE_ENABLE_BANNER_GRAB", base.enable_banner_grab, project_dir
            ),
            enable_alternative=get_bool(
                "NETSAGE_ENABLE_ALTERNATIVE", base.enable_alternative, project_dir
            ),
            scan_ttl_seconds=get_int("NETSAGE_SCAN_TTL_SECONDS", base.scan_ttl_seconds, project_dir),
        )


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


@dataclass
class ScanOptions:
    """Caller-supplied overrides for a single scan."""

    comprehensive: bool = False
    aggressive: bool = False
    ports: str | None = None
    timeout_ms: int | None = None
    enable_udp: bool | None = None
    enable_vuln_scan: bool | None = None
    evasion_profile: str | None = None
    proxies: list[str] | None = None
    use_tor: bool | None = None
    allow_direct_fallback: bool | None = None
    severity: str | None = None
    template_categories: list[str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ScanOptions":
        """Accept snake_case keys or the camelCase names used by the API layer."""
        data = data or {}
        proxy_config = _pick(data, "proxy_config", "proxyConfig") or {}
        if isinstance(proxy_config, list):
            proxy_config = {"proxies": proxy_config}
        timeout = _pick(data, "timeout_ms", "timeoutMs", "timeout")
        return cls(
            comprehensive=bool(data.get("comprehensive", False)),
            aggressive=bool(data.get("aggressive", False)),
            ports=_pick(data, "ports"),
            timeout_ms=int(timeout) if timeout is not None else None,
            enable_udp=_pick(data, "enable_udp", "enableUdp"),
            enable_vuln_scan=_pick(data, "enable_vuln_scan", "enableNuclei", "enableVulnScan"),
            evasion_profile=_pick(data, "evasion_profile", "evasionProfile"),
            proxies=_pick(proxy_config, "proxies", "proxyList"),
            use_tor=_pick(proxy_config, "use_tor", "useTor"),
            allow_direct_fallback=_pick(proxy_config, "allow_direct", "allowDirect"),
            severity=_pick(data, "severity"),
            template_categories=_pick(data, "template_categories", "templateCategories", "templates"),
        )

    def apply(self, settings: ScanSettings) -> ScanSettings:
        """Return a copy of settings with these overrides applied."""
        changes: dict[str, Any] = {
            "comprehensive": self.comprehensive,
            "aggressive": self.aggressive,
        }
        if self.ports:
            changes["default_ports"] = [p.strip() for p in self.ports.split(",") if p.strip()]
        if self.timeout_ms is not None:
            changes["overall_timeout_ms"] = self.timeout_ms
        if self.enable_udp is not None:
            changes["enable_udp"] = bool(self.enable_udp)
        if self.enable_vuln_scan is not None:
            changes["enable_vuln_scan"] = bool(self.enable_vuln_scan)
        if self.evasion_profile:
            if self.evasion_profile not in EVASION_PROFILES:
                raise ValueError(f"Unknown evasion profile: {self.evasion_profile}")
            changes["evasion_profile"] = self.evasion_profile
        if self.proxies is not None:
            changes["proxies"] = list(self.proxies)
        if self.use_tor is not None:
            changes["use_tor"] = bool(self.use_tor)
        if self.allow_direct_fallback is not None:
            changes["allow_direct_fallback"] = bool(self.allow_direct_fallback)
        if self.severity:
            if self.severity not in SEVERITY_TIERS:
                raise ValueError(f"Unknown severity tier: {self.severity}")
            changes["severity"] = self.severity
        elif self.comprehensive:
            changes["severity"] = "all"
        if self.template_categories:
            changes["template_categories"] = list(self.template_categories)
        return replace(settings, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "comprehensive": self.comprehensive,
            "aggressive": self.aggressive,
            "ports": self.ports,
            "timeout_ms": self.timeout_ms,
            "enable_udp": self.enable_udp,
            "enable_vuln_scan": self.enable_vuln_scan,
            "evasion_profile": self.evasion_profile,
            "proxies": self.proxies,
            "use_tor": self.use_tor,
            "severity": self.severity,
            "template_categories": self.template_categories,
        }
