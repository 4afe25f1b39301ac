"""Evasion profiles for port-scan attempts."""

import random
from dataclasses import dataclass, field

SOURCE_PORTS = [53, 80, 443, 20, 25]
DECOY_PREFIXES = ["13.32", "20.38", "34.64", "104.16", "172.64"]


@dataclass(frozen=True)
class ProfileSpec:
    """Declarative knobs for one named profile."""

    fragmentation: int = 0
    decoys: int = 0
    spoof_source_port: bool = False
    randomize_hosts: bool = True
    randomize_ports: bool = False
    data_length: int = 0
    scan_delay_ms: int = 0
    spoof_mac: bool = False


PROFILES = {
    "minimal": ProfileSpec(data_length=8),
    "moderate": ProfileSpec(
        fragmentation=1,
        spoof_source_port=True,
        data_length=24,
        scan_delay_ms=100,
    ),
    "aggressive": ProfileSpec(
        fragmentation=2,
        decoys=5,
        spoof_source_port=True,
        randomize_ports=True,
        data_length=56,
        scan_delay_ms=250,
        spoof_mac=True,
    ),
}


@dataclass(frozen=True)
class EvasionProfile:
    """
    Concrete flag set for one scan.

    Randomized values (source port, decoys) are drawn once when the profile
    is built, so every attempt in a scan uses the same flags.
    """

    name: str
    spec: ProfileSpec
    source_port: int | None = None
    decoys: tuple[str, ...] = field(default_factory=tuple)

    def flags(self, raw_packets: bool = True) -> list[str]:
        """
        Return nmap flags for this profile.

        With ``raw_packets=False`` (connect scans) techniques that need raw
        sockets are left out because nmap cannot apply them.
        """
        spec = self.spec
        args: list[str] = []
        if raw_packets and spec.fragmentation:
            args.append("-" + "f" * spec.fragmentation)
        if raw_packets and self.decoys:
            args.append("-D" + ",".join(self.decoys))
        if raw_packets and self.source_port is not None:
            args.append(f"--source-port={self.source_port}")
        if spec.randomize_hosts:
            args.append("--randomize-hosts")
        if spec.randomize_ports:
            args.append("--randomize-ports")
        if raw_packets and spec.data_length:
            args.append(f"--data-length={spec.data_length}")
        if raw_packets and spec.spoof_mac:
            args.append("--spoof-mac=0")
        if spec.scan_delay_ms:
            args.append(f"--scan-delay={spec.scan_delay_ms}ms")
        return args

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "fragmentation": self.spec.fragmentation,
            "decoy_count": len([d for d in self.decoys if d != "ME"]),
            "source_port": self.source_port,
            "randomize_ports": self.spec.randomize_ports,
            "data_length": self.spec.data_length,
            "scan_delay_ms": self.spec.scan_delay_ms,
            "spoof_mac": self.spec.spoof_mac,
        }


def _decoy_address(rng: random.Random) -> str:
    prefix = rng.choice(DECOY_PREFIXES)
    return f"{prefix}.{rng.randint(1, 254)}.{rng.randint(1, 254)}"


def build_profile(name: str = "minimal", rng: random.Random | None = None) -> EvasionProfile:
    """
    Build the evasion profile ``name`` (minimal, moderate or aggressive).

    Decoys place the real scanner (``ME``) at a random position.
    """
    try:
        spec = PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown evasion profile {name!r}; expected one of {', '.join(PROFILES)}"
        ) from None
    rng = rng or random.Random()

    source_port = rng.choice(SOURCE_PORTS) if spec.spoof_source_port else None
    decoys: list[str] = []
    if spec.decoys:
        decoys = [_decoy_address(rng) for _ in range(spec.decoys)]
        decoys.insert(rng.randint(0, len(decoys)), "ME")
    return EvasionProfile(name=name, spec=spec, source_port=source_port, decoys=tuple(decoys))
