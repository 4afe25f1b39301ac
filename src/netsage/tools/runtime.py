"""Runtime helpers for invoking external scanning tools."""

import asyncio
import logging
import shlex
import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass

from netsage.exceptions import CommandFailedError, CommandTimeoutError

logger = logging.getLogger(__name__)

_TERMINATE_GRACE = 3.0


@dataclass
class CommandResult:
    """Captured subprocess result."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed: float = 0.0


def resolve_binary(name: str) -> str | None:
    """Return absolute path for a binary name when available."""
    return shutil.which(name)


async def _reap(process: asyncio.subprocess.Process) -> None:
    """Terminate a child process, escalating to kill if it ignores SIGTERM."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_command(
    command: list[str],
    timeout: float | None = None,
    allowed_exit_codes: Iterable[int] = (0,),
) -> CommandResult:
    """
    Run a subprocess command and capture decoded output.

    The child is always reaped: on timeout it is terminated (then killed) and
    ``CommandTimeoutError`` is raised; if the awaiting task is cancelled the
    child is killed before the cancellation propagates.
    """
    started = time.perf_counter()
    logger.debug("running: %s", " ".join(shlex.quote(part) for part in command))
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        if timeout is None:
            stdout, stderr = await process.communicate()
        else:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        await _reap(process)
        raise CommandTimeoutError(command, timeout or 0.0) from None
    except asyncio.CancelledError:
        await asyncio.shield(_reap(process))
        raise

    elapsed = time.perf_counter() - started
    result = CommandResult(
        command=list(command),
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        elapsed=elapsed,
    )

    if result.returncode not in set(allowed_exit_codes):
        snippet = (result.stderr or result.stdout).strip().splitlines()
        detail = snippet[0] if snippet else "unknown error"
        raise CommandFailedError(command, result.returncode, detail)
    logger.debug("done (%.2fs): exit=%s", elapsed, result.returncode)
    return result
