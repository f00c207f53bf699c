"""
Debounce utility for the asyncio event loop.

    save = debounce(send_quantity, 0.5)
    save("p1")   # schedules
    save("p1")   # cancels the first, reschedules; only this call runs

Coroutine functions are started as tasks when the quiet period ends.
"""

import asyncio
import inspect
from typing import Any, Callable, List, Optional, Set

from cartsync import config
from cartsync.logging import get_logger

logger = get_logger(__name__)


class Debounced:
    """Callable wrapper that runs `fn` once per burst, with the last call's arguments."""

    def __init__(self, fn: Callable[..., Any], delay: float):
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.fn = fn
        self.delay = delay
        self.task: Optional[asyncio.Future] = None
        self._running: Set[asyncio.Future] = set()
        self._handle: Optional[asyncio.TimerHandle] = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self._args, self._kwargs = args, kwargs
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    @property
    def pending(self) -> bool:
        """True while a call is scheduled but has not fired."""
        return self._handle is not None

    def _fire(self) -> Optional[asyncio.Future]:
        self._handle = None
        args, kwargs = self._args, self._kwargs
        self._args, self._kwargs = (), {}
        result = self.fn(*args, **kwargs)
        if not inspect.isawaitable(result):
            return None
        self.task = asyncio.ensure_future(result)
        self._running.add(self.task)
        self.task.add_done_callback(self._report)
        return self.task

    @property
    def running(self) -> List[asyncio.Future]:
        """Every fired call that has not finished, oldest bursts included."""
        return [t for t in self._running if not t.done()]

    def _report(self, task: asyncio.Future) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Debounced call %s failed", getattr(self.fn, "__name__", self.fn), exc_info=error)

    def cancel(self) -> None:
        """Drop the scheduled call, if any. Calls that already fired keep running."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._args, self._kwargs = (), {}

    async def flush(self) -> None:
        """Fire the scheduled call now and wait for it."""
        if self._handle is None:
            return
        self._handle.cancel()
        task = self._fire()
        if task is not None:
            await task


def debounce(fn: Callable[..., Any], delay: float = config.CART_DEBOUNCE_DELAY) -> Debounced:
    """Wrap fn so bursts of calls within `delay` seconds collapse into one trailing call."""
    return Debounced(fn, delay)
