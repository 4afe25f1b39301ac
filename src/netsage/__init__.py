"""NetSage external reconnaissance and vulnerability triage."""

__version__ = "0.3.0"

__all__ = ["__version__", "app", "main"]


def _quiet_closed_loop_transports() -> None:
    """
    Ignore "Event loop is closed" from subprocess transports collected late.

    A scan that hits its deadline cancels and kills running nmap and nuclei
    processes, and ``safe_async_run`` closes its loop right after. Their
    transports are often garbage collected only then, and ``__del__`` would
    print a RuntimeError traceback at the end of every timed-out CLI scan.
    """
    import asyncio.base_subprocess

    transport_cls = asyncio.base_subprocess.BaseSubprocessTransport
    original = transport_cls.__del__

    def __del__(self):
        try:
            original(self)
        except RuntimeError as exc:
            if "Event loop is closed" not in str(exc):
                raise

    transport_cls.__del__ = __del__


_quiet_closed_loop_transports()


def __getattr__(name: str):
    if name in ("app", "main"):
        from netsage import cli

        return getattr(cli, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
