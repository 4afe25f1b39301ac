"""
Canonical scan result document.

The document is always built from ``result_template`` so every section is
present with safe defaults; whatever the sub-scans produced is deep-merged
on top.
"""

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from netsage import __version__
from netsage.tools.http import empty_security_headers

from .detection import DetectionResult, synthetic_port_entry
from .errors import ErrorKind, ErrorRecord, ScanStatus
from .portscan import PortScanState, extract_port_from_target, map_services_to_ports, normalize_state
from .target import ScanTarget
from .vulnscan import SEVERITIES, VulnScanState, count_by_severity

COMPONENTS = ("port_scan", "http_analysis", "vulnerability_scan")
TRANSPORTS = ("tcp", "udp")


def empty_http_section() -> dict[str, Any]:
    return {
        "url": None,
        "status_code": None,
        "status_message": None,
        "headers": {},
        "server": None,
        "content_type": None,
        "response_time_ms": None,
        "security_headers": empty_security_headers(),
        "missing_security_headers": [],
    }


def result_template(scan_id: str, target: str = "") -> dict[str, Any]:
    """A complete result document with every section at its default."""
    return {
        "scan_id": scan_id,
        "target": target,
        "scan_timestamp": datetime.now(UTC).isoformat(),
        "scan_duration_ms": 0,
        "ports": [],
        "http": empty_http_section(),
        "vulnerabilities": [],
        "vulnerability_summary": {
            "total_count": 0,
            "by_severity": dict.fromkeys(SEVERITIES, 0),
            "templates": {"selected": [], "severity": [], "stats": None},
            "waf": {"performed": False, "detected": False, "names": []},
        },
        "errors": [],
        "scan_status": {
            name: ScanStatus.not_run("Not run").to_dict() for name in COMPONENTS
        },
        "port_detection": {
            "url_extraction": {"extraction_successful": False, "ports_found": []},
            "service_mapping": {"mapping_successful": False, "mappings": [], "message": None},
            "banner_grabbing": {"enabled": False, "attempted": 0, "captured": 0, "ports": []},
        },
        "alternative_detection": {
            "performed": False,
            "success": False,
            "methods_applied": [],
            "tls_info": None,
            "http_fingerprint": None,
            "technologies_detected": [],
            "security_products": [],
            "errors": [],
        },
        "metadata": {
            "scanner_version": __version__,
            "options": {},
            "evasion_profile": None,
            "proxy": None,
            "responsiveness": None,
            "ladder_attempts": [],
            "timed_out": False,
            "started_at": None,
            "completed_at": None,
        },
    }


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``overlay`` into a copy of ``base``.

    Nested dicts merge key by key; any other overlay value replaces the base
    value, except ``None``, which never erases a default.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_ports(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Drop malformed port entries and collapse duplicates per (port, protocol).

    A later duplicate only fills fields the earlier one left empty.
    """
    kept: dict[tuple[int, str], dict[str, Any]] = {}
    for entry in entries:
        try:
            port = int(entry.get("port"))
        except (TypeError, ValueError):
            continue
        if not 0 < port < 65536:
            continue
        protocol = str(entry.get("protocol") or "tcp").lower()
        if protocol not in TRANSPORTS:
            continue
        normalized = {**entry, "port": port, "protocol": protocol}
        normalized["state"] = normalize_state(str(entry.get("state") or "unknown"))
        existing = kept.get((port, protocol))
        if existing is None:
            kept[(port, protocol)] = normalized
            continue
        for name, value in normalized.items():
            if existing.get(name) in (None, "", "unknown", {}) and value not in (None, ""):
                existing[name] = value
    return sorted(kept.values(), key=lambda e: (e["protocol"], e["port"]))


def summarize_vulnerabilities(state: VulnScanState) -> dict[str, Any]:
    return {
        "total_count": len(state.findings),
        "by_severity": count_by_severity(state.findings),
        "templates": {
            "selected": list(state.templates),
            "severity": list(state.severity),
            "stats": state.stats.to_dict() if state.stats else None,
        },
        "waf": state.waf.to_dict(),
    }


@dataclass
class ScanArtifacts:
    """Raw outputs of one orchestrated scan, handed to ``build_result``."""

    scan_id: str
    target: ScanTarget | None = None
    raw_target: str = ""
    statuses: dict[str, ScanStatus] = field(default_factory=dict)
    ports: PortScanState | None = None
    http: dict[str, Any] | None = None
    vulns: VulnScanState | None = None
    detection: DetectionResult | None = None
    errors: list[ErrorRecord] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    evasion: dict[str, Any] | None = None
    proxy: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    timed_out: bool = False


def _fallback_entry(artifacts: ScanArtifacts) -> dict[str, Any] | None:
    if artifacts.target is None:
        return None
    detection = artifacts.detection
    entry = synthetic_port_entry(artifacts.target, detection).to_dict()
    if detection is None or not detection.success:
        entry["state"] = "unknown"
        entry["detection_method"] = "fallback"
    return entry


def build_result(artifacts: ScanArtifacts) -> dict[str, Any]:
    """Assemble the canonical document from whatever the scan produced."""
    target = artifacts.target
    overlay: dict[str, Any] = {
        "target": target.url if target else artifacts.raw_target,
        "scan_duration_ms": artifacts.duration_ms,
        "http": artifacts.http,
        "alternative_detection": artifacts.detection.to_dict() if artifacts.detection else None,
    }
    if artifacts.started_at:
        overlay["scan_timestamp"] = artifacts.started_at.isoformat()

    errors = list(artifacts.errors)
    entries: list[dict[str, Any]] = []
    port_detection: dict[str, Any] = {}
    ladder: list[dict[str, Any]] = []
    if artifacts.ports is not None:
        entries = [f.to_dict() for f in artifacts.ports.findings.all()]
        errors.extend(artifacts.ports.errors)
        ladder = [a.to_dict() for a in artifacts.ports.attempts]
        if artifacts.ports.enrichment:
            port_detection["banner_grabbing"] = artifacts.ports.enrichment.get("banner_grabbing")
    if target is not None:
        port_detection["url_extraction"] = extract_port_from_target(target)

    ports = validate_ports(entries)
    if not ports:
        fallback = _fallback_entry(artifacts)
        if fallback is not None:
            ports = [fallback]
    services = sorted({p["service"] for p in ports if p.get("service") not in (None, "", "unknown")})
    if services:
        port_detection["service_mapping"] = map_services_to_ports(services)
    overlay["ports"] = ports
    overlay["port_detection"] = port_detection

    if artifacts.vulns is not None:
        overlay["vulnerabilities"] = [f.to_dict() for f in artifacts.vulns.findings]
        overlay["vulnerability_summary"] = summarize_vulnerabilities(artifacts.vulns)
        errors.extend(artifacts.vulns.errors)
    if artifacts.detection is not None:
        errors.extend(artifacts.detection.errors)

    overlay["scan_status"] = {name: status.to_dict() for name, status in artifacts.statuses.items()}
    overlay["errors"] = [e.to_dict() for e in errors]
    overlay["metadata"] = {
        "options": artifacts.options,
        "evasion_profile": artifacts.evasion,
        "proxy": artifacts.proxy,
        "responsiveness": target.responsiveness.value if target else None,
        "ladder_attempts": ladder,
        "timed_out": artifacts.timed_out,
        "started_at": artifacts.started_at.isoformat() if artifacts.started_at else None,
        "completed_at": artifacts.completed_at.isoformat() if artifacts.completed_at else None,
    }
    return deep_merge(result_template(artifacts.scan_id), overlay)


def failure_result(scan_id: str, raw_target: str, kind: ErrorKind, message: str) -> dict[str, Any]:
    """Result for a scan that could not start; every component carries the same failure."""
    record = ErrorRecord(component="scan", kind=kind, message=message)
    artifacts = ScanArtifacts(
        scan_id=scan_id,
        raw_target=raw_target,
        statuses={name: ScanStatus.failed(kind, message) for name in COMPONENTS},
        errors=[record],
    )
    return build_result(artifacts)
