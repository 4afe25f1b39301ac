"""Nmap command construction and execution."""

import logging
from collections.abc import Awaitable, Callable

from netsage.exceptions import ToolNotFoundError
from netsage.tools.runtime import CommandResult, resolve_binary, run_command

from .models import HostResult, NmapRequest, PortScanResult
from .privileges import _needs_sudo
from .xml_parser import parse_nmap_xml

logger = logging.getLogger(__name__)

# Extra wall-clock allowance on top of nmap's own --host-timeout.
PROCESS_GRACE = 5.0

CommandRunner = Callable[..., Awaitable[CommandResult]]


class NmapScanner:
    """Wrapper for nmap subprocess calls."""

    def __init__(self, command_runner: CommandRunner | None = None):
        self._runner = command_runner or run_command

    def _binary(self) -> str:
        binary = resolve_binary("nmap")
        if not binary:
            raise ToolNotFoundError("nmap")
        return binary

    def build_command(self, request: NmapRequest, binary: str = "nmap") -> list[str]:
        """Translate a request into an nmap argv (XML on stdout)."""
        use_sudo = request.method.raw_packets and _needs_sudo("nmap")
        cmd = ["sudo", "-n", binary] if use_sudo else [binary]

        cmd.append(request.method.flag)
        if request.fast:
            cmd.append("-F")
        elif request.ports:
            cmd.extend(["-p", request.ports])

        if request.version_detection:
            cmd.append("-sV")
            if request.version_intensity is not None:
                cmd.append(f"--version-intensity={request.version_intensity}")
        if request.default_scripts:
            cmd.append("-sC")
        if request.scripts:
            cmd.append("--script=" + ",".join(request.scripts))

        cmd.append("-Pn")
        if request.host_timeout is not None:
            cmd.extend(["--host-timeout", f"{max(1, int(request.host_timeout))}s"])
        cmd.extend(["--max-retries", str(request.max_retries)])
        cmd.append(f"-T{request.timing}")
        if request.min_rate:
            cmd.append(f"--min-rate={request.min_rate}")
        cmd.extend(request.extra_args)
        cmd.extend(["-oX", "-", request.target])
        return cmd

    async def scan(self, request: NmapRequest, timeout: float | None = None) -> list[HostResult]:
        """
        Run nmap and parse its XML output.

        ``timeout`` bounds the whole process; by default it is the host
        timeout plus a small grace period.
        """
        cmd = self.build_command(request, self._binary())
        if timeout is None and request.host_timeout is not None:
            timeout = request.host_timeout + PROCESS_GRACE
        logger.debug("nmap %s scan of %s (timeout=%s)", request.method, request.target, timeout)
        result = await self._runner(cmd, timeout=timeout)
        return parse_nmap_xml(result.stdout)

    async def scan_ports(
        self, request: NmapRequest, timeout: float | None = None
    ) -> list[PortScanResult]:
        """Flatten all hosts' ports from one scan."""
        hosts = await self.scan(request, timeout=timeout)
        return [port for host in hosts for port in host.ports]
