"""Alternative (passive) service and technology detection."""

from .detector import (
    COMPONENT,
    AlternativeDetector,
    DetectionResult,
    http_fingerprint,
    synthetic_port_entry,
)
from .fingerprints import (
    Technology,
    detect_cookie_technologies,
    detect_frontend,
    detect_header_technologies,
    detect_waf,
    extract_version,
    extract_wordpress_version,
)
from .tls import CertificateInfo, fetch_certificate, issuer_technologies, parse_certificate

__all__ = [
    "COMPONENT",
    "AlternativeDetector",
    "CertificateInfo",
    "DetectionResult",
    "Technology",
    "detect_cookie_technologies",
    "detect_frontend",
    "detect_header_technologies",
    "detect_waf",
    "extract_version",
    "extract_wordpress_version",
    "fetch_certificate",
    "http_fingerprint",
    "issuer_technologies",
    "parse_certificate",
    "synthetic_port_entry",
]
