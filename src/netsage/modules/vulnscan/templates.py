"""Template category selection, severity tiers and custom template management."""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from netsage.modules.target import ScanTarget

logger = logging.getLogger(__name__)

SEVERITIES = ("critical", "high", "medium", "low", "info", "unknown")

SEVERITY_LEVELS: dict[str, list[str]] = {
    "critical": ["critical"],
    "high": ["critical", "high"],
    "medium": ["critical", "high", "medium"],
    "low": ["critical", "high", "medium", "low"],
    "info": ["critical", "high", "medium", "low", "info"],
    "all": list(SEVERITIES),
}

TEMPLATE_CATEGORIES: dict[str, list[str]] = {
    "basic": ["technologies", "ssl", "http/headers", "http/robots-txt"],
    "security": ["cves", "vulnerabilities", "exposures", "misconfiguration", "default-logins"],
    "web": ["cves", "vulnerabilities", "exposures", "misconfiguration", "http/exposed-panels"],
    "api": ["api", "takeovers", "http/exposed-tokens", "http/swagger", "iot/api"],
    "webapp": [
        "http/technologies",
        "http/exposed-panels",
        "http/exposures",
        "http/vulnerabilities",
        "http/misconfiguration",
        "http/files",
    ],
    "waf": ["http/waf", "http/firewall-bypass", "http/waf-detection"],
    "network": ["network", "network/ftp", "network/ssh", "network/telnet", "network/smtp"],
}

# Category groups a comprehensive scan covers regardless of target shape.
COMPREHENSIVE_GROUPS = ("basic", "web", "webapp", "api", "network")

# Small template set used for the WAF pre-check.
WAF_DETECTION_TEMPLATES = ["http/technologies/waf-detect.yaml", "http/waf"]

API_PATH_MARKERS = ("/api", "/v1", "/v2", "/rest", "/graphql")

DEFAULT_TEMPLATE_DIRS = ("nuclei-templates", ".local/nuclei-templates", ".nuclei/templates")

_SEVERITY_LINE = re.compile(r"^\s*severity:\s*['\"]?(\w+)", re.M)
_SLUG = re.compile(r"[^a-z0-9-]+")


@dataclass
class TemplateStats:
    """Template counts per severity and per top-level category."""

    total: int = 0
    by_severity: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SEVERITIES, 0))
    by_category: dict[str, int] = field(default_factory=dict)
    templates_dir: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_severity": dict(self.by_severity),
            "by_category": dict(self.by_category),
            "templates_dir": self.templates_dir,
        }


def severities_for(tier: str) -> list[str]:
    """Severity list for a tier name (critical ... all)."""
    try:
        return list(SEVERITY_LEVELS[tier.lower()])
    except KeyError:
        raise ValueError(
            f"Unknown severity tier {tier!r}; expected one of {', '.join(SEVERITY_LEVELS)}"
        ) from None


def infer_category(path: str) -> str:
    """api for API-looking paths, webapp for any other non-root path, else web."""
    lowered = (path or "/").split("?", 1)[0].lower()
    if any(marker in lowered for marker in API_PATH_MARKERS):
        return "api"
    if lowered not in ("", "/"):
        return "webapp"
    return "web"


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def slugify(name: str) -> str:
    slug = _SLUG.sub("-", name.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")


class TemplateManager:
    """Chooses nuclei templates per target and manages user-defined templates."""

    def __init__(self, templates_dir: str | Path | None = None, custom_dir: str | Path | None = None):
        self.templates_dir = Path(templates_dir).expanduser() if templates_dir else None
        if self.templates_dir is None:
            self.templates_dir = self.detect_templates_dir()
        self.custom_dir = Path(custom_dir).expanduser() if custom_dir else None

    @staticmethod
    def detect_templates_dir(home: Path | None = None) -> Path | None:
        """Return the first existing default nuclei templates directory."""
        base = home or Path.home()
        for relative in DEFAULT_TEMPLATE_DIRS:
            candidate = base / relative
            if candidate.is_dir():
                return candidate
        return None

    # ── selection ────────────────────────────────────────────────

    def custom_templates(self) -> list[Path]:
        if not self.custom_dir or not self.custom_dir.is_dir():
            return []
        return sorted(p for p in self.custom_dir.iterdir() if p.suffix in (".yaml", ".yml"))

    def select(
        self,
        target: ScanTarget,
        categories: list[str] | None = None,
        waf_detected: bool = False,
        comprehensive: bool = False,
    ) -> list[str]:
        """
        Choose template paths for a target.

        Explicit ``categories`` win (names from TEMPLATE_CATEGORIES expand to
        their template paths; anything else is passed through). A comprehensive
        scan takes every group in COMPREHENSIVE_GROUPS. Otherwise the path
        shape decides. The security baseline is always added. Custom
        templates are appended when present, WAF templates only when a WAF
        was detected.
        """
        selected: list[str] = []
        if categories:
            for category in categories:
                selected.extend(TEMPLATE_CATEGORIES.get(category, [category]))
        else:
            groups = COMPREHENSIVE_GROUPS if comprehensive else (infer_category(target.path),)
            for group in groups:
                selected.extend(TEMPLATE_CATEGORIES[group])
            selected.extend(TEMPLATE_CATEGORIES["security"])

        if self.custom_templates():
            selected.append(str(self.custom_dir))
        if waf_detected and not any("waf" in item for item in selected):
            selected.extend(TEMPLATE_CATEGORIES["waf"])
        return _dedupe(selected)

    def suggestions(self, target: ScanTarget, technologies: list[str] | None = None) -> dict[str, list[str]]:
        """Template suggestions grouped as recommended / additional / severe."""
        path = target.path.lower()
        recommended = ["technologies"]
        severe: list[str] = []
        techs = {t.lower() for t in technologies or []}
        if "/wp-" in path or "/wordpress" in path or "wordpress" in techs:
            recommended.append("http/cms/wordpress")
            severe.append("http/vulnerabilities/wordpress")
        if "/joomla" in path or "joomla" in techs:
            recommended.append("http/cms/joomla")
        if "/drupal" in path or "drupal" in techs:
            recommended.append("http/cms/drupal")
        if infer_category(path) == "api":
            recommended.extend(["api", "http/exposed-tokens"])
            severe.append("http/api")
        severe.extend(["default-logins", "exposures"])
        return {
            "recommended": _dedupe(recommended),
            "additional": ["vulnerabilities", "cves", "misconfiguration", "http/waf"],
            "severe": _dedupe(severe),
        }

    # ── statistics ───────────────────────────────────────────────

    def template_stats(self, categories: list[str] | None = None) -> TemplateStats:
        """Count templates by severity, restricted to ``categories`` when given."""
        stats = TemplateStats(templates_dir=str(self.templates_dir) if self.templates_dir else None)
        roots: list[tuple[str, Path]] = []
        if self.templates_dir and self.templates_dir.is_dir():
            if categories:
                for category in categories:
                    path = Path(category)
                    if not path.is_absolute():
                        path = self.templates_dir / category
                    if path.exists():
                        roots.append((category, path))
            else:
                roots.extend((p.name, p) for p in self.templates_dir.iterdir() if p.is_dir())
        if self.custom_dir and self.custom_dir.is_dir() and not categories:
            roots.append(("custom", self.custom_dir))

        for category, root in roots:
            files = [root] if root.is_file() else list(root.rglob("*.yaml"))
            stats.by_category[category] = len(files)
            for file in files:
                stats.total += 1
                stats.by_severity[self._read_severity(file)] += 1
        return stats

    @staticmethod
    def _read_severity(path: Path) -> str:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return "unknown"
        match = _SEVERITY_LINE.search(text)
        severity = match.group(1).lower() if match else "unknown"
        return severity if severity in SEVERITIES else "unknown"

    # ── custom templates ─────────────────────────────────────────

    def _require_custom_dir(self) -> Path:
        if not self.custom_dir:
            raise ValueError("No custom templates directory configured")
        self.custom_dir.mkdir(parents=True, exist_ok=True)
        return self.custom_dir

    def create_custom_template(self, data: dict[str, Any]) -> Path:
        """
        Write a simple HTTP matcher template.

        ``data`` needs name, description and severity; optional author,
        path (str or list) and match ({status, words, regex}).
        """
        missing = [key for key in ("name", "description", "severity") if not data.get(key)]
        if missing:
            raise ValueError(f"Missing required template fields: {', '.join(missing)}")
        severity = str(data["severity"]).lower()
        if severity not in SEVERITIES:
            raise ValueError(f"Invalid severity {data['severity']!r}")

        template_id = slugify(str(data["name"]))
        if not template_id:
            raise ValueError("Template name must contain letters or digits")
        path = self._require_custom_dir() / f"{template_id}.yaml"
        if path.exists():
            raise FileExistsError(f"Template {path.name} already exists")

        paths = data.get("path") or ["{{BaseURL}}"]
        if isinstance(paths, str):
            paths = [paths]
        match = data.get("match") or {"status": [200]}
        matchers = []
        for kind in ("status", "words", "regex"):
            values = match.get(kind)
            if values is None:
                continue
            matchers.append({"type": "word" if kind == "words" else kind, kind: _as_list(values)})

        document = {
            "id": template_id,
            "info": {
                "name": str(data["name"]),
                "author": str(data.get("author") or "netsage"),
                "severity": severity,
                "description": str(data["description"]),
                "created": datetime.now(UTC).date().isoformat(),
            },
            "http": [{"method": "GET", "path": list(paths), "matchers": matchers}],
        }
        path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        logger.info("Created custom template %s", path)
        return path

    def list_custom_templates(self) -> list[dict[str, Any]]:
        templates = []
        for path in self.custom_templates():
            try:
                document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as exc:
                logger.warning("Skipping unreadable template %s: %s", path, exc)
                continue
            info = document.get("info", {}) if isinstance(document, dict) else {}
            templates.append(
                {
                    "filename": path.name,
                    "path": str(path),
                    "id": document.get("id", path.stem) if isinstance(document, dict) else path.stem,
                    "name": info.get("name", path.stem),
                    "severity": str(info.get("severity", "unknown")).lower(),
                    "description": info.get("description", ""),
                    "author": info.get("author", "unknown"),
                }
            )
        return templates

    def delete_custom_template(self, name: str) -> bool:
        """Delete a custom template by file name; directory parts are ignored."""
        if not self.custom_dir:
            return False
        path = self.custom_dir / Path(name).name
        if path.suffix not in (".yaml", ".yml") or not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted custom template %s", path)
        return True


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list | tuple) else [value]
