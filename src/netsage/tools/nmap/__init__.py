"""Nmap wrapper for port and service discovery."""

from .models import HostResult, NmapRequest, PortScanResult, ScanMethod
from .privileges import _can_sudo_without_password, _is_root, _needs_sudo, can_send_raw_packets
from .scanner import NmapScanner
from .xml_parser import parse_nmap_xml

__all__ = [
    "HostResult",
    "NmapRequest",
    "NmapScanner",
    "PortScanResult",
    "ScanMethod",
    "can_send_raw_packets",
    "parse_nmap_xml",
    "_is_root",
    "_can_sudo_without_password",
    "_needs_sudo",
]
