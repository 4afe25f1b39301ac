"""Nuclei command construction and execution."""

import logging
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from netsage.exceptions import ToolNotFoundError
from netsage.tools.runtime import CommandResult, resolve_binary, run_command

from .decoder import DecodedOutput, decode_output

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., Awaitable[CommandResult]]

UPDATE_TIMEOUT = 300.0


@dataclass
class NucleiRequest:
    """One nuclei invocation. ``template_timeout`` is nuclei's per-request timeout in seconds."""

    target: str
    templates: list[str] = field(default_factory=list)
    severity: list[str] = field(default_factory=list)
    template_timeout: int = 10
    rate_limit: int = 150
    concurrency: int = 25
    bulk_size: int = 25
    retries: int = 1
    templates_dir: str = ""
    proxy: str | None = None
    extra_args: list[str] = field(default_factory=list)


def resolve_template_paths(templates: list[str], templates_dir: str) -> list[str]:
    """Anchor relative template categories under ``templates_dir`` when they exist there."""
    if not templates_dir:
        return list(templates)
    base = Path(templates_dir).expanduser()
    resolved = []
    for template in templates:
        candidate = base / template
        if not Path(template).is_absolute() and candidate.exists():
            resolved.append(str(candidate))
        else:
            resolved.append(template)
    return resolved


class NucleiRunner:
    """Run nuclei templates against one target and decode the findings."""

    def __init__(self, command_runner: CommandRunner | None = None):
        self._runner = command_runner or run_command

    def _binary(self) -> str:
        binary = resolve_binary("nuclei")
        if not binary:
            raise ToolNotFoundError("nuclei")
        return binary

    def build_command(
        self, request: NucleiRequest, binary: str = "nuclei", output_file: str | None = None
    ) -> list[str]:
        command = [
            binary,
            "-u",
            request.target,
            "-jsonl",
            "-silent",
            "-no-color",
            "-timeout",
            str(max(1, request.template_timeout)),
            "-rate-limit",
            str(request.rate_limit),
            "-c",
            str(request.concurrency),
            "-bulk-size",
            str(request.bulk_size),
            "-retries",
            str(request.retries),
        ]
        templates = resolve_template_paths(request.templates, request.templates_dir)
        if templates:
            command.extend(["-t", ",".join(templates)])
        if request.severity:
            command.extend(["-severity", ",".join(request.severity)])
        if request.proxy:
            command.extend(["-proxy", request.proxy])
        if output_file:
            command.extend(["-o", output_file])
        command.extend(request.extra_args)
        return command

    async def run(self, request: NucleiRequest, timeout: float | None = None) -> DecodedOutput:
        """
        Run nuclei and decode its findings.

        Findings are read from the output file when nuclei wrote one,
        otherwise from stdout. No findings is not an error.
        """
        binary = self._binary()
        with tempfile.TemporaryDirectory(prefix="netsage-nuclei-") as tmpdir:
            output_file = Path(tmpdir) / "findings.jsonl"
            command = self.build_command(request, binary, str(output_file))
            result = await self._runner(command, timeout=timeout)
            text = ""
            if output_file.exists():
                text = output_file.read_text(encoding="utf-8", errors="replace")
            if not text.strip():
                text = result.stdout
        decoded = decode_output(text)
        logger.debug(
            "nuclei produced %d records (%s) for %s", len(decoded.records), decoded.shape, request.target
        )
        return decoded

    async def update_templates(self, timeout: float = UPDATE_TIMEOUT) -> CommandResult:
        """Run ``nuclei -update-templates``."""
        return await self._runner([self._binary(), "-update-templates"], timeout=timeout)

    async def version(self) -> str:
        result = await self._runner([self._binary(), "-version"], timeout=30.0)
        lines = (result.stdout or result.stderr).strip().splitlines()
        return lines[-1] if lines else ""
