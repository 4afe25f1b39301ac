"""TLS certificate retrieval and parsing."""

import asyncio
import ssl
from dataclasses import dataclass, field
from typing import Any

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID

# Issuer substrings that identify a CA or CDN in front of the target.
ISSUER_TECHNOLOGIES = {
    "Let's Encrypt": "Let's Encrypt",
    "DigiCert": "DigiCert",
    "Cloudflare": "Cloudflare",
    "Sectigo": "Sectigo",
    "GlobalSign": "GlobalSign",
    "Amazon": "Amazon",
    "Google Trust Services": "Google Trust Services",
}


@dataclass
class CertificateInfo:
    subject: str
    issuer: str
    valid_from: str
    valid_to: str
    fingerprint_sha256: str
    serial_number: str
    alt_names: list[str] = field(default_factory=list)
    is_self_signed: bool = False
    signature_algorithm: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "valid_from": self.valid_from,
            "valid_to": self.valid_to,
            "fingerprint_sha256": self.fingerprint_sha256,
            "serial_number": self.serial_number,
            "alt_names": list(self.alt_names),
            "is_self_signed": self.is_self_signed,
            "signature_algorithm": self.signature_algorithm,
        }


def _name_summary(name: x509.Name) -> str:
    parts = []
    for oid in (NameOID.COMMON_NAME, NameOID.ORGANIZATION_NAME):
        attrs = name.get_attributes_for_oid(oid)
        if attrs:
            parts.append(str(attrs[0].value))
    return ", ".join(parts) or "Unknown"


def parse_certificate(der: bytes) -> CertificateInfo:
    """Decode a DER certificate."""
    cert = x509.load_der_x509_certificate(der)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        alt_names = [str(n) for n in san.value.get_values_for_type(x509.DNSName)]
    except x509.ExtensionNotFound:
        alt_names = []
    fingerprint = cert.fingerprint(hashes.SHA256()).hex().upper()
    try:
        digest = cert.signature_hash_algorithm
    except UnsupportedAlgorithm:
        digest = None
    return CertificateInfo(
        subject=_name_summary(cert.subject),
        issuer=_name_summary(cert.issuer),
        valid_from=cert.not_valid_before_utc.isoformat(),
        valid_to=cert.not_valid_after_utc.isoformat(),
        fingerprint_sha256=":".join(fingerprint[i : i + 2] for i in range(0, len(fingerprint), 2)),
        serial_number=format(cert.serial_number, "X"),
        alt_names=alt_names,
        is_self_signed=cert.issuer == cert.subject,
        signature_algorithm=digest.name if digest else None,
    )


def issuer_technologies(issuer: str) -> list[str]:
    return [name for marker, name in ISSUER_TECHNOLOGIES.items() if marker.lower() in issuer.lower()]


async def fetch_certificate(hostname: str, port: int = 443, timeout: float = 10.0) -> bytes:
    """Complete a TLS handshake (verification off) and return the peer certificate in DER."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    _reader, writer = await asyncio.wait_for(
        asyncio.open_connection(hostname, port, ssl=context, server_hostname=hostname),
        timeout=timeout,
    )
    try:
        ssl_object = writer.get_extra_info("ssl_object")
        der = ssl_object.getpeercert(binary_form=True) if ssl_object else None
    finally:
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=2.0)
        except (OSError, TimeoutError, ssl.SSLError):
            pass
    if not der:
        raise ssl.SSLError("No certificate presented")
    return der
