"""Technology and WAF fingerprints for headers, cookies and HTML."""

import re
from dataclasses import dataclass
from typing import Any

from bs4 import BeautifulSoup

HEADER_PATTERNS: dict[str, re.Pattern[str]] = {
    "nginx": re.compile(r"nginx/(\d+\.\d+\.\d+)", re.I),
    "apache": re.compile(r"apache/(\d+\.\d+\.\d+)", re.I),
    "iis": re.compile(r"microsoft-iis/(\d+\.\d+)", re.I),
    "php": re.compile(r"php/(\d+\.\d+\.\d+)", re.I),
    "nodejs": re.compile(r"node/v(\d+\.\d+\.\d+)", re.I),
    "aspnet": re.compile(r"ASP\.NET", re.I),
    "cloudflare": re.compile(r"cloudflare", re.I),
    "aws": re.compile(r"AmazonS3|CloudFront|AWSELB", re.I),
}

COOKIE_PATTERNS: dict[str, re.Pattern[str]] = {
    "php": re.compile(r"_php|PHPSESSID", re.I),
    "aspnet": re.compile(r"_asp|ASP\.NET_SessionId", re.I),
    "java": re.compile(r"JSESSIONID", re.I),
    "django": re.compile(r"django|csrftoken", re.I),
    "wordpress": re.compile(r"wordpress_|wp-", re.I),
}

WAF_SIGNATURES: dict[str, re.Pattern[str]] = {
    "cloudflare": re.compile(r"cloudflare|cf-ray|__cf", re.I),
    "sucuri": re.compile(r"sucuri", re.I),
    "incapsula": re.compile(r"incapsula|incap_ses|visid_incap", re.I),
    "akamai": re.compile(r"akamai", re.I),
    "fortinet": re.compile(r"fortinet|fortiweb|fortigate", re.I),
    # Bare "F5" would match hex in any header value.
    "f5": re.compile(r"\bBigIP\b|\bBIG-IP\b|\bF5\b|^TS[0-9a-f]{6,}", re.I),
}

SCRIPT_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "jquery": [re.compile(r"jquery[.-](\d+\.\d+\.\d+)", re.I), re.compile(r"/jquery(\.min)?\.js", re.I)],
    "react": [re.compile(r"react(?:-dom)?[@-](\d+\.\d+\.\d+)", re.I), re.compile(r"\bReact\b")],
    "angular": [re.compile(r"angular[.-](\d+\.\d+\.\d+)", re.I), re.compile(r"ng-app")],
    "vue": [re.compile(r"vue[@-](\d+\.\d+\.\d+)", re.I), re.compile(r"v-bind")],
    "bootstrap": [re.compile(r"bootstrap[.-](\d+\.\d+\.\d+)", re.I), re.compile(r"class=[\"']btn")],
    "wordpress": [re.compile(r"wp-content", re.I), re.compile(r"wp-includes", re.I)],
    "drupal": [re.compile(r"drupal\.js", re.I), re.compile(r"Drupal\.settings")],
}

WORDPRESS_VERSION_PATTERNS = [
    re.compile(r"WordPress (\d+\.\d+(?:\.\d+)?)", re.I),
    re.compile(r"wp-emoji-release\.min\.js\?ver=(\d+\.\d+(?:\.\d+)?)", re.I),
    re.compile(r"wp-content/themes/[^/]+/style\.css\?ver=(\d+\.\d+(?:\.\d+)?)", re.I),
]

_GENERIC_VERSIONS = [
    re.compile(r"v?(\d+\.\d+\.\d+)"),
    re.compile(r"version[/\s:=_-](\d+\.\d+(?:\.\d+)?)", re.I),
    re.compile(r"(\d+\.\d+(?:\.\d+)?)"),
]


@dataclass
class Technology:
    name: str
    category: str
    confidence: str = "medium"
    version: str | None = None
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "confidence": self.confidence,
            "version": self.version,
            "source": self.source,
        }


def extract_version(text: str, pattern: re.Pattern[str] | None = None) -> str | None:
    """Version from the pattern's first group, else from generic version shapes."""
    if not text:
        return None
    if pattern is not None:
        match = pattern.search(text)
        if match and match.groups() and match.group(1):
            return match.group(1)
        return None
    for candidate in _GENERIC_VERSIONS:
        match = candidate.search(text)
        if match:
            return match.group(1)
    return None


def extract_wordpress_version(html: str) -> str | None:
    for pattern in WORDPRESS_VERSION_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def detect_header_technologies(headers: dict[str, str]) -> list[Technology]:
    technologies: list[Technology] = []
    server = headers.get("server") or headers.get("Server")
    if server:
        technologies.append(
            Technology(server, "server", "high", extract_version(server), source="server_header")
        )
    for tech, pattern in HEADER_PATTERNS.items():
        for name, value in headers.items():
            if pattern.search(str(value)):
                technologies.append(
                    Technology(tech, "header", "medium", extract_version(str(value), pattern), name.lower())
                )
                break
    return technologies


def detect_cookie_technologies(cookies: dict[str, str]) -> list[Technology]:
    technologies = []
    for tech, pattern in COOKIE_PATTERNS.items():
        if any(pattern.search(name) for name in cookies):
            technologies.append(Technology(tech, "cookie", "medium", source="cookie"))
    return technologies


def detect_waf(headers: dict[str, str], cookies: dict[str, str] | None = None) -> list[str]:
    """WAF/CDN product names whose signature shows up in header names, values or cookie names."""
    haystack = [f"{name}: {value}" for name, value in headers.items()]
    haystack.extend(cookies or {})
    return [name for name, pattern in WAF_SIGNATURES.items() if any(pattern.search(h) for h in haystack)]


def detect_frontend(html: str) -> list[Technology]:
    """Front-end frameworks and CMS from script/link tags, inline scripts and markup."""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    sources = [tag["src"] for tag in soup.find_all("script", src=True)]
    sources.extend(
        tag["href"]
        for tag in soup.find_all("link", href=True)
        if "stylesheet" in (tag.get("rel") or [])
    )
    inline = "\n".join(tag.get_text() for tag in soup.find_all("script", src=False))

    found: dict[str, Technology] = {}
    for tech, patterns in SCRIPT_PATTERNS.items():
        for src in sources:
            pattern = next((p for p in patterns if p.search(src)), None)
            if pattern is not None:
                found[tech] = Technology(tech, "frontend", "high", extract_version(src, pattern), "js_src")
                break
        if tech in found:
            continue
        for text, confidence, source in ((inline, "medium", "inline_js"), (html, "low", "html")):
            pattern = next((p for p in patterns if p.search(text)), None)
            if pattern is not None:
                version = extract_version(text, pattern) if source == "inline_js" else None
                found[tech] = Technology(tech, "frontend", confidence, version, source)
                break

    generator = soup.find("meta", attrs={"name": "generator"})
    generator_text = generator.get("content", "") if generator else ""
    cms = {
        "WordPress": re.search(r"wp-content|wp-includes|wp-json", html, re.I)
        or "wordpress" in generator_text.lower(),
        "Drupal": re.search(r"Drupal\.settings|drupal-core", html, re.I)
        or "drupal" in generator_text.lower(),
        "Joomla": re.search(r"joomla!", html, re.I) or "joomla" in generator_text.lower(),
    }
    for name, matched in cms.items():
        if not matched:
            continue
        version = None
        if name == "WordPress":
            version = extract_wordpress_version(generator_text) or extract_wordpress_version(html)
        found[f"cms:{name}"] = Technology(name, "cms", "high", version, "cms_fingerprint")
    return list(found.values())
