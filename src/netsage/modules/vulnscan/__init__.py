"""Template-driven vulnerability scanning."""

from .engine import COMPONENT, VulnerabilityScanEngine, VulnScanState, WafCheck, waf_names
from .findings import (
    VulnerabilityFinding,
    count_by_severity,
    extract_cves,
    normalize_findings,
    normalize_severity,
)
from .templates import (
    SEVERITIES,
    SEVERITY_LEVELS,
    TEMPLATE_CATEGORIES,
    WAF_DETECTION_TEMPLATES,
    TemplateManager,
    TemplateStats,
    infer_category,
    severities_for,
)

__all__ = [
    "COMPONENT",
    "SEVERITIES",
    "SEVERITY_LEVELS",
    "TEMPLATE_CATEGORIES",
    "WAF_DETECTION_TEMPLATES",
    "TemplateManager",
    "TemplateStats",
    "VulnScanState",
    "VulnerabilityFinding",
    "VulnerabilityScanEngine",
    "WafCheck",
    "count_by_severity",
    "extract_cves",
    "infer_category",
    "normalize_findings",
    "normalize_severity",
    "severities_for",
    "waf_names",
]
