"""HTTP helpers for NetSage."""

from .client import HTTPClient, HTTPResponse
from .headers import (
    SECURITY_HEADERS,
    analyze_security_headers,
    build_http_profile,
    empty_security_headers,
    missing_security_headers,
)

__all__ = [
    "HTTPClient",
    "HTTPResponse",
    "SECURITY_HEADERS",
    "analyze_security_headers",
    "build_http_profile",
    "empty_security_headers",
    "missing_security_headers",
]
