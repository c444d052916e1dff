"""
Event-loop timers for the session components.

`call_later` and `call_every` are the one-shot and repeating timers the
session runs on. Callbacks may be plain functions or coroutine functions;
coroutines are scheduled as tasks on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Union

from mocktest.logger import setup_logger

logger = setup_logger(__name__)

Callback = Callable[[], Union[None, Awaitable[Any]]]


class TimerHandle:
    """Cancellable reference to a scheduled callback."""

    def __init__(self) -> None:
        self.cancelled = False
        self._timer: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...

    def call_every(self, interval: float, callback: Callback) -> TimerHandle: ...

    def spawn(self, awaitable: Awaitable[Any]) -> None: ...


class AsyncioScheduler:
    """
    Scheduler backed by the running asyncio loop.

    Must be used from inside the loop (every call resolves the running
    loop lazily).
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle()

        def _fire() -> None:
            if handle.cancelled:
                return
            handle._timer = None
            self._run(callback)

        handle._timer = loop.call_later(delay, _fire)
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle()

        def _fire() -> None:
            if handle.cancelled:
                return
            # Re-arm before running so a slow callback never skips a beat
            handle._timer = loop.call_later(interval, _fire)
            self._run(callback)

        handle._timer = loop.call_later(interval, _fire)
        return handle

    def spawn(self, awaitable: Awaitable[Any]) -> None:
        """Run a coroutine in the background, keeping a reference to it."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    async def drain(self) -> None:
        """Wait for every background task spawned so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _run(self, callback: Callback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.error(f"❌ Scheduled callback failed: {e}", exc_info=True)
            return
        if inspect.isawaitable(result):
            self.spawn(result)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"❌ Background task failed: {exc}", exc_info=exc)
