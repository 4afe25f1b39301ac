"""Running scan coroutines from synchronous entry points."""

import asyncio
import gc
import signal
import sys
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar, cast

T = TypeVar("T")


def _drain(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel leftover tasks and shut down generators and the executor."""
    pending = asyncio.all_tasks(loop)
    for task in pending:
        task.cancel()
    if pending:
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    for shutdown in (loop.shutdown_asyncgens, loop.shutdown_default_executor):
        try:
            loop.run_until_complete(shutdown())
        except RuntimeError:
            pass


def _install_interrupt_handlers(loop: asyncio.AbstractEventLoop, flag: list[bool]) -> dict[int, Any]:
    """Turn SIGINT/SIGTERM into task cancellation so child processes get reaped."""
    if sys.platform == "win32" or threading.current_thread() is not threading.main_thread():
        return {}

    def handler(signum: int, frame: Any) -> None:
        flag[0] = True
        for task in asyncio.all_tasks(loop):
            task.cancel()

    return {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}


def _run_in_new_loop(coro: Coroutine[Any, Any, T]) -> T:
    loop = asyncio.ProactorEventLoop() if sys.platform == "win32" else asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    interrupted = [False]
    previous = _install_interrupt_handlers(loop, interrupted)
    try:
        return loop.run_until_complete(coro)
    except asyncio.CancelledError:
        if interrupted[0]:
            raise KeyboardInterrupt from None
        raise
    finally:
        try:
            _drain(loop)
        finally:
            # Collect subprocess transports while the loop can still close them.
            gc.collect()
            asyncio.set_event_loop(None)
            loop.close()
            for sig, handler in previous.items():
                signal.signal(sig, handler)


def safe_async_run(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run ``coro`` to completion on a fresh event loop.

    When called from inside a running loop (pytest-asyncio, notebooks) the
    coroutine runs on a worker thread with its own loop instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _run_in_new_loop(coro)

    outcome: dict[str, Any] = {}

    def worker() -> None:
        try:
            outcome["result"] = _run_in_new_loop(coro)
        except BaseException as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()
    thread.join()
    if "error" in outcome:
        raise outcome["error"]
    return cast(T, outcome.get("result"))
