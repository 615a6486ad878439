"""Cancellable scheduled callbacks.

Both timers run on a scheduler exposing ``call_later(delay, callback, *args)``
and ``time()``; the running asyncio event loop is the default. Tests pass a
virtual-clock scheduler instead.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from docmark.logging.logger import Log


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancellable: ...

    def time(self) -> float: ...


def default_scheduler() -> Scheduler:
    return asyncio.get_running_loop()


class OneShotTimer:
    """Fires ``callback`` once after ``delay`` seconds unless cancelled."""

    def __init__(
        self,
        scheduler: Scheduler,
        delay: float,
        callback: Callable[[], None],
    ) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._callback = callback
        self._handle: Cancellable | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class RepeatingTimer:
    """Calls ``callback`` every ``period`` seconds until cancelled.

    The callback may be a coroutine function. Runs never overlap: the next
    run is scheduled only once the previous one has settled. Cancelling does
    not interrupt a run already in progress.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        period: float,
        callback: Callable[[], Awaitable[None] | None],
    ) -> None:
        self._scheduler = scheduler
        self._period = period
        self._callback = callback
        self._handle: Cancellable | None = None
        self._running: asyncio.Future[None] | None = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self.cancel()
        self._active = True
        self._schedule()

    def cancel(self) -> None:
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(self._period, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if not self._active:
            return
        result = self._callback()
        if inspect.isawaitable(result):
            self._running = asyncio.ensure_future(result)
            self._running.add_done_callback(self._settled)
        elif self._active:
            self._schedule()

    def _settled(self, future: "asyncio.Future[None]") -> None:
        self._running = None
        exc = None if future.cancelled() else future.exception()
        if exc is not None:
            Log.exception("Repeating timer callback raised", exc)
        if self._active:
            self._schedule()
