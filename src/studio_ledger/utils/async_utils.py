"""Run ledger coroutines from Celery tasks and CLI commands."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")

_loop: asyncio.AbstractEventLoop | None = None


def _reusable_loop() -> asyncio.AbstractEventLoop:
    """Event loop shared by every call in this process; recreated if closed."""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from synchronous code.

    The loop stays open between calls so connections a video provider opened
    during one task remain usable in the next task of the same worker.

    Raises:
        RuntimeError: Called from inside a running event loop (await instead).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _reusable_loop().run_until_complete(coro)

    coro.close()
    raise RuntimeError("run_async() called from a running event loop; await the coroutine instead")
