"""Security header analysis."""

from typing import Any

from .client import HTTPResponse

# Header name -> result key.
SECURITY_HEADERS = {
    "Strict-Transport-Security": "hsts",
    "Content-Security-Policy": "csp",
    "X-Frame-Options": "x_frame_options",
    "X-Content-Type-Options": "x_content_type_options",
    "X-XSS-Protection": "x_xss_protection",
    "Referrer-Policy": "referrer_policy",
    "Permissions-Policy": "permissions_policy",
}


def empty_security_headers() -> dict[str, dict[str, Any]]:
    """Security header map with every header marked absent."""
    return {key: {"present": False, "value": None} for key in SECURITY_HEADERS.values()}


def analyze_security_headers(headers: dict[str, str]) -> dict[str, dict[str, Any]]:
    """Flag each security header as present/absent and keep its raw value."""
    # Headers may be lowercase in response, so check case-insensitively
    lowered = {k.lower(): v for k, v in headers.items()}
    results = empty_security_headers()
    for header, key in SECURITY_HEADERS.items():
        value = lowered.get(header.lower())
        if value is not None:
            results[key] = {"present": True, "value": value}
    return results


def missing_security_headers(headers: dict[str, str]) -> list[str]:
    lowered = {k.lower() for k in headers}
    return [header for header in SECURITY_HEADERS if header.lower() not in lowered]


def build_http_profile(response: HTTPResponse) -> dict[str, Any]:
    """Summarize an HTTP response into the profile stored on the scan result."""
    return {
        "url": response.url,
        "status_code": response.status_code,
        "status_message": response.reason,
        "headers": dict(response.headers),
        "server": response.server or None,
        "content_type": response.content_type or None,
        "response_time_ms": int(response.response_time * 1000),
        "security_headers": analyze_security_headers(response.headers),
        "missing_security_headers": missing_security_headers(response.headers),
    }
