"""Exception hierarchy shared by the NetSage tool wrappers and scan modules."""


class NetSageError(Exception):
    """Base class for all NetSage errors."""


class InvalidTargetError(NetSageError, ValueError):
    """Raised when a target string cannot be parsed into a host."""


class ToolNotFoundError(NetSageError):
    """Raised when a required external binary is missing from PATH."""

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(f"{binary} is not installed or not found in PATH")


class CommandTimeoutError(NetSageError, TimeoutError):
    """Raised when an external command exceeds its time budget and was killed."""

    def __init__(self, command: list[str], timeout: float):
        self.command = list(command)
        self.timeout = timeout
        preview = " ".join(command[:3])
        super().__init__(f"Command timed out after {timeout:.1f}s: {preview}")


class CommandFailedError(NetSageError):
    """Raised when an external command exits with a non-allowed status."""

    def __init__(self, command: list[str], returncode: int, detail: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.detail = detail
        super().__init__(f"Command failed with exit code {returncode}: {detail or 'unknown error'}")


class ScanNotFoundError(NetSageError, KeyError):
    """Raised when a scan id is unknown or has been evicted."""

    def __init__(self, scan_id: str):
        self.scan_id = scan_id
        super().__init__(scan_id)

    def __str__(self) -> str:
        return f"Scan not found: {self.scan_id}"
