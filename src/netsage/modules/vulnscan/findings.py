"""Normalization of raw nuclei records into vulnerability findings."""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .templates import SEVERITIES

CVE_PATTERN = re.compile(r"CVE-\d{4}-\d{4,}", re.I)


def normalize_severity(value: Any) -> str:
    """Map any severity value onto the six fixed levels."""
    severity = str(value or "").strip().lower()
    if severity in ("informational", "information"):
        severity = "info"
    return severity if severity in SEVERITIES else "unknown"


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list | tuple | set):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _unique_upper(values: list[str]) -> list[str]:
    return list(dict.fromkeys(value.upper() for value in values))


def extract_cves(tags: list[str], references: list[str], *texts: str) -> list[str]:
    """CVE ids from tags, then reference URLs, then free text; first non-empty source wins."""
    from_tags = [tag for tag in tags if CVE_PATTERN.fullmatch(tag.strip())]
    if from_tags:
        return _unique_upper(from_tags)
    from_refs = [m for ref in references for m in CVE_PATTERN.findall(ref)]
    if from_refs:
        return _unique_upper(from_refs)
    return _unique_upper([m for text in texts if text for m in CVE_PATTERN.findall(text)])


@dataclass
class VulnerabilityFinding:
    name: str
    severity: str = "unknown"
    type: str = "http"
    host: str = ""
    matched: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    cve: list[str] = field(default_factory=list)
    timestamp: str = ""
    template_id: str = ""
    matcher_name: str = ""
    extracted_results: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.severity = normalize_severity(self.severity)

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.matched)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "VulnerabilityFinding":
        """Build a finding from one decoded nuclei record."""
        info = record.get("info") if isinstance(record.get("info"), dict) else {}
        template_id = str(
            record.get("template-id") or record.get("templateID") or record.get("template_id") or ""
        )
        if not template_id and isinstance(record.get("template"), str):
            template_id = record["template"]
        name = str(info.get("name") or template_id or "Unknown")
        description = str(info.get("description") or "").strip()
        tags = _as_list(info.get("tags"))
        references = _as_list(info.get("reference"))

        classification = info.get("classification")
        cve = []
        if isinstance(classification, dict):
            cve = _unique_upper(
                [c for c in _as_list(classification.get("cve-id")) if CVE_PATTERN.fullmatch(c)]
            )
        if not cve:
            cve = extract_cves(tags, references, name, description)

        matched = str(record.get("matched-at") or record.get("matched") or record.get("url") or "")
        return cls(
            name=name,
            severity=info.get("severity") or record.get("severity"),
            type=str(record.get("type") or "http"),
            host=str(record.get("host") or ""),
            matched=matched,
            description=description,
            tags=tags,
            references=references,
            cve=cve,
            timestamp=str(record.get("timestamp") or datetime.now(UTC).isoformat()),
            template_id=template_id,
            matcher_name=str(record.get("matcher-name") or record.get("matcher_name") or ""),
            extracted_results=_as_list(record.get("extracted-results")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity,
            "type": self.type,
            "host": self.host,
            "matched": self.matched,
            "description": self.description,
            "tags": list(self.tags),
            "references": list(self.references),
            "cve": list(self.cve),
            "timestamp": self.timestamp,
            "template_id": self.template_id,
        }


def normalize_findings(records: list[dict[str, Any]]) -> list[VulnerabilityFinding]:
    """Normalize records, keeping the first finding per (name, matched)."""
    findings: dict[tuple[str, str], VulnerabilityFinding] = {}
    for record in records:
        finding = VulnerabilityFinding.from_record(record)
        findings.setdefault(finding.key, finding)
    return list(findings.values())


def count_by_severity(findings: list[VulnerabilityFinding]) -> dict[str, int]:
    counts = dict.fromkeys(SEVERITIES, 0)
    for finding in findings:
        counts[finding.severity] += 1
    return counts
