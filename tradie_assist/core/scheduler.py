"""
Cancellable deferred actions.

A scheduled action is represented by a TimerHandle; cancelling a handle that
already fired (or was already cancelled) is a no-op. Tests swap in a manual
scheduler with the same interface to drive the clock by hand.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    def __init__(self, delay: float, callback: AsyncCallback):
        self.delay = delay
        self.callback = callback
        self.created_at = time.time()
        self.cancelled = False
        self.fired = False
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired

    def cancel(self) -> bool:
        """Cancel the pending action. Returns False if it already fired or was cancelled."""
        if not self.active:
            return False
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        return True


class AsyncioScheduler:
    """Runs deferred async callbacks on the running event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, delay: float, callback: AsyncCallback) -> TimerHandle:
        handle = TimerHandle(delay, callback)
        loop = asyncio.get_running_loop()
        handle._timer = loop.call_later(delay, self._fire, handle)
        return handle

    def _fire(self, handle: TimerHandle) -> None:
        if not handle.active:
            return
        handle.fired = True
        task = asyncio.create_task(handle.callback())
        # Keep a reference until done so the task is not garbage collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for callbacks that already fired (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
