"""Shared background execution context for image resolution.

Preview states hand decode work here so the caller's thread (typically the
GUI thread during layout) never blocks on pixel decoding.

Synchronous decodes run on a thread pool. Attachment thumbnailers are
coroutines; they run on one long-lived event loop thread so a thumbnailer
that is slow (or never finishes) holds no pool worker while it waits.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Coroutine
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from .logger import get_logger
from .settings_manager import get_settings

_logger = get_logger("background")

_executor: ThreadPoolExecutor | None = None
_loop: asyncio.AbstractEventLoop | None = None
_loop_thread: threading.Thread | None = None
_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    global _executor
    with _lock:
        if _executor is None:
            workers = get_settings().decode_workers
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="link_preview")
            _logger.debug("background executor started: workers=%s", workers)
        return _executor


def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    try:
        loop.run_forever()
    finally:
        tasks = asyncio.all_tasks(loop)
        for task in tasks:
            task.cancel()
        if tasks:
            loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
        loop.close()


def get_loop() -> asyncio.AbstractEventLoop:
    global _loop, _loop_thread
    with _lock:
        if _loop is None:
            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=_run_loop, args=(loop,), name="link_preview-async", daemon=True)
            thread.start()
            _loop, _loop_thread = loop, thread
            _logger.debug("background event loop started")
        return _loop


def dispatch(fn: Callable[..., object], *args: object) -> Future:
    return get_executor().submit(fn, *args)


def run_coroutine(coro: Coroutine[Any, Any, Any]) -> Future:
    """Schedule ``coro`` on the shared event loop thread."""
    return asyncio.run_coroutine_threadsafe(coro, get_loop())


def shutdown(wait: bool = False) -> None:
    """Stop the shared executor and event loop; the next use starts fresh ones."""
    global _executor, _loop, _loop_thread
    with _lock:
        executor, _executor = _executor, None
        loop, _loop = _loop, None
        thread, _loop_thread = _loop_thread, None
    if executor is not None:
        executor.shutdown(wait=wait, cancel_futures=True)
        _logger.debug("background executor stopped")
    if loop is not None:
        loop.call_soon_threadsafe(loop.stop)
        if wait and thread is not None:
            thread.join()
        _logger.debug("background event loop stopped")
