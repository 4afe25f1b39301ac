"""Nmap XML output parser."""

import logging
import xml.etree.ElementTree as ET

from .models import HostResult, PortScanResult

logger = logging.getLogger(__name__)


def parse_nmap_xml(xml_data: str) -> list[HostResult]:
    """Parse ``nmap -oX`` output into HostResult objects; malformed XML yields []."""
    if not xml_data or not xml_data.strip():
        return []
    try:
        root = ET.fromstring(xml_data)
    except ET.ParseError:
        logger.warning("Could not parse nmap XML output (%d bytes)", len(xml_data))
        return []

    results = []
    for host in root.findall("host"):
        host_result = _parse_host(host)
        if host_result:
            results.append(host_result)
    return results


def _parse_host(host_elem: ET.Element) -> HostResult | None:
    address = host_elem.find("address[@addrtype='ipv4']")
    if address is None:
        address = host_elem.find("address")
    if address is None:
        return None

    hostname = ""
    hostname_elem = host_elem.find("hostnames/hostname")
    if hostname_elem is not None:
        hostname = hostname_elem.get("name", "")

    status_elem = host_elem.find("status")
    status = status_elem.get("state", "") if status_elem is not None else ""

    ports = []
    for port in host_elem.findall("ports/port"):
        port_result = _parse_port(port)
        if port_result:
            ports.append(port_result)

    return HostResult(
        ip=address.get("addr", ""),
        hostname=hostname,
        status=status,
        ports=ports,
    )


def _parse_port(port_elem: ET.Element) -> PortScanResult | None:
    try:
        port_num = int(port_elem.get("portid", ""))
    except ValueError:
        return None

    state_elem = port_elem.find("state")
    state = state_elem.get("state", "") if state_elem is not None else ""

    service = product = version = extra_info = ""
    service_elem = port_elem.find("service")
    if service_elem is not None:
        service = service_elem.get("name", "")
        product = service_elem.get("product", "")
        version = service_elem.get("version", "")
        extra_info = service_elem.get("extrainfo", "")
        if service_elem.get("tunnel") == "ssl" and service in ("http", "http-alt"):
            service = "https"

    scripts = {}
    for script in port_elem.findall("script"):
        script_id = script.get("id")
        if script_id:
            scripts[script_id] = (script.get("output") or "").strip()

    return PortScanResult(
        port=port_num,
        protocol=port_elem.get("protocol", "tcp"),
        state=state,
        service=service,
        version=version,
        product=product,
        extra_info=extra_info,
        scripts=scripts,
    )
