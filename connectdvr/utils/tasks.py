"""
Single-slot timers and fire-and-forget task tracking on the asyncio loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

LOG = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[Any]]]


class BackgroundTasks:
    """Keep strong references to spawned tasks so they can be cancelled or drained."""

    def __init__(self, name: str = "background") -> None:
        self.name = name
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, awaitable: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOG.error("%s task failed", self.name, exc_info=exc)

    async def drain(self, timeout: Optional[float] = None) -> None:
        pending = [task for task in self._tasks if not task.done()]
        if not pending:
            return
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            LOG.debug("%s: %d task(s) still pending after drain", self.name, len(still_pending))

    async def cancel_all(self) -> None:
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task


class RetryTimer:
    """
    At most one pending delayed callback.

    :meth:`start` is a no-op while a call is pending; :meth:`restart` cancels
    the pending call first. Coroutine callbacks are scheduled on ``tasks``.
    """

    def __init__(self, name: str, tasks: Optional[BackgroundTasks] = None) -> None:
        self.name = name
        self._tasks = tasks or BackgroundTasks(name)
        self._handle: Optional[asyncio.TimerHandle] = None
        self._delay: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def delay(self) -> Optional[float]:
        return self._delay if self._handle is not None else None

    def start(self, delay: float, callback: TimerCallback) -> bool:
        if self._handle is not None:
            return False
        loop = asyncio.get_running_loop()
        self._delay = max(0.0, float(delay))
        self._handle = loop.call_later(self._delay, self._fire, callback)
        return True

    def restart(self, delay: float, callback: TimerCallback) -> None:
        self.cancel()
        self.start(delay, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._delay = None

    def _fire(self, callback: TimerCallback) -> None:
        self._handle = None
        self._delay = None
        try:
            result = callback()
        except Exception:
            LOG.exception("%s timer callback failed", self.name)
            return
        if inspect.isawaitable(result):
            self._tasks.spawn(result)
