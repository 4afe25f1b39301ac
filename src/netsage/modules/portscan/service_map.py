"""Well-known service to port mappings."""

from dataclasses import dataclass
from typing import Any

from netsage.modules.target import ScanTarget


@dataclass(frozen=True)
class ServiceInfo:
    ports: tuple[int, ...]
    transport: str
    description: str


SERVICES: dict[str, ServiceInfo] = {
    "http": ServiceInfo((80, 8080, 8000, 8008), "tcp", "Hypertext Transfer Protocol"),
    "https": ServiceInfo((443, 8443), "tcp", "HTTP over TLS"),
    "ftp": ServiceInfo((21,), "tcp", "File Transfer Protocol"),
    "ftps": ServiceInfo((990,), "tcp", "FTP over TLS"),
    "ssh": ServiceInfo((22,), "tcp", "Secure Shell"),
    "telnet": ServiceInfo((23,), "tcp", "Telnet"),
    "smtp": ServiceInfo((25, 587), "tcp", "Simple Mail Transfer Protocol"),
    "smtps": ServiceInfo((465,), "tcp", "SMTP over TLS"),
    "pop3": ServiceInfo((110,), "tcp", "Post Office Protocol v3"),
    "pop3s": ServiceInfo((995,), "tcp", "POP3 over TLS"),
    "imap": ServiceInfo((143,), "tcp", "Internet Message Access Protocol"),
    "imaps": ServiceInfo((993,), "tcp", "IMAP over TLS"),
    "dns": ServiceInfo((53,), "udp", "Domain Name System"),
    "dhcp": ServiceInfo((67, 68), "udp", "Dynamic Host Configuration Protocol"),
    "tftp": ServiceInfo((69,), "udp", "Trivial File Transfer Protocol"),
    "ntp": ServiceInfo((123,), "udp", "Network Time Protocol"),
    "netbios": ServiceInfo((137, 138, 139), "udp", "NetBIOS services"),
    "snmp": ServiceInfo((161, 162), "udp", "Simple Network Management Protocol"),
    "ldap": ServiceInfo((389,), "tcp", "Lightweight Directory Access Protocol"),
    "ldaps": ServiceInfo((636,), "tcp", "LDAP over TLS"),
    "smb": ServiceInfo((445,), "tcp", "Server Message Block"),
    "isakmp": ServiceInfo((500,), "udp", "IKE / IPsec key exchange"),
    "syslog": ServiceInfo((514,), "udp", "Syslog"),
    "rip": ServiceInfo((520,), "udp", "Routing Information Protocol"),
    "ipp": ServiceInfo((631,), "tcp", "Internet Printing Protocol"),
    "mssql": ServiceInfo((1433, 1434), "tcp", "Microsoft SQL Server"),
    "oracle": ServiceInfo((1521,), "tcp", "Oracle database listener"),
    "upnp": ServiceInfo((1900,), "udp", "SSDP / UPnP"),
    "mysql": ServiceInfo((3306,), "tcp", "MySQL"),
    "rdp": ServiceInfo((3389,), "tcp", "Remote Desktop Protocol"),
    "postgresql": ServiceInfo((5432,), "tcp", "PostgreSQL"),
    "mdns": ServiceInfo((5353,), "udp", "Multicast DNS"),
    "vnc": ServiceInfo((5900,), "tcp", "Virtual Network Computing"),
    "redis": ServiceInfo((6379,), "tcp", "Redis"),
    "elasticsearch": ServiceInfo((9200,), "tcp", "Elasticsearch"),
    "memcached": ServiceInfo((11211,), "tcp", "Memcached"),
    "mongodb": ServiceInfo((27017,), "tcp", "MongoDB"),
}

# nmap service names that map onto a canonical entry above.
ALIASES = {
    "http-alt": "http",
    "http-proxy": "http",
    "ssl/http": "https",
    "https-alt": "https",
    "domain": "dns",
    "microsoft-ds": "smb",
    "netbios-ssn": "netbios",
    "netbios-ns": "netbios",
    "ms-sql-s": "mssql",
    "ms-sql-m": "mssql",
    "postgres": "postgresql",
    "mongod": "mongodb",
    "ms-wbt-server": "rdp",
    "submission": "smtp",
}

SCHEME_PORTS = {"http": 80, "https": 443, "ftp": 21, "ssh": 22, "smtp": 25}


def canonical_service(name: str) -> str:
    value = (name or "").strip().lower()
    return ALIASES.get(value, value)


def default_port_for_scheme(scheme: str) -> int | None:
    return SCHEME_PORTS.get((scheme or "").lower())


def ports_for_service(name: str) -> list[int]:
    info = SERVICES.get(canonical_service(name))
    return list(info.ports) if info else []


def service_for_port(port: int, transport: str = "tcp") -> str | None:
    """Guess the service conventionally bound to a port."""
    for name, info in SERVICES.items():
        if port in info.ports and info.transport == transport:
            return name
    for name, info in SERVICES.items():
        if port in info.ports:
            return name
    return None


def extract_port_from_target(target: ScanTarget) -> dict[str, Any]:
    """Describe where the target's port came from (explicit in the URL or scheme default)."""
    return {
        "extraction_successful": True,
        "ports_found": [
            {
                "port": target.port,
                "protocol": "tcp",
                "detected_from": "explicit_url_port" if target.explicit_port else "protocol_default",
                "hostname": target.hostname,
                "protocol_name": target.protocol,
            }
        ],
    }


def map_services_to_ports(services: list[str]) -> dict[str, Any]:
    """Standard ports for each known service name."""
    mappings = []
    for service in services:
        name = canonical_service(service)
        info = SERVICES.get(name)
        if info:
            mappings.append(
                {"service": service, "ports": list(info.ports), "protocol": info.transport}
            )
    return {
        "mapping_successful": bool(mappings),
        "mappings": mappings,
        "message": None if mappings else "No port mappings found for the provided services",
    }
