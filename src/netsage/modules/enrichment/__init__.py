"""Service enrichment: NSE script probes and banner grabbing."""

from .banner import (
    BannerGrabber,
    banner_complete,
    identify_banner,
    normalize_banner,
    probe_for_service,
    should_use_tls,
)
from .scripts import SERVICE_SCRIPTS, ServiceEnricher, scripts_for_service

__all__ = [
    "BannerGrabber",
    "SERVICE_SCRIPTS",
    "ServiceEnricher",
    "banner_complete",
    "identify_banner",
    "normalize_banner",
    "probe_for_service",
    "scripts_for_service",
    "should_use_tls",
]
