from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ..logger import get_logger
from .types import SleepFunc

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

logger: BoundLogger = get_logger(__name__)


class PeriodicTask:
    """Fire an async callback on a fixed interval until stopped.

    Each tick launches the callback as its own task and the timer keeps
    running. A tick never waits for the previous callback to finish, so the
    callback must guard itself against re-entrancy (the operation queue's
    drain pass does). ``stop()`` cancels the timer and awaits in-flight
    callbacks, which makes shutdown deterministic.

    Parameters
    ----------
    callback : Callable[[], Awaitable[object]]
        Coroutine function invoked on every tick.
    interval : float
        Seconds between ticks.
    name : str
        Task name used in logs.
    sleep : SleepFunc
        Suspension primitive. Tests inject a controllable sleep.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        *,
        name: str = "periodic-task",
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self._interval = interval
        self._name = name
        self._sleep = sleep
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._ticks = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def ticks(self) -> int:
        """Number of times the timer has fired."""
        return self._ticks

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start the timer. Calling it on a running task is a no-op."""
        if self.running:
            return
        self._timer = asyncio.create_task(self._run(), name=self._name)
        logger.info("Periodic task started", task=self._name, interval=self._interval)

    async def stop(self) -> None:
        """Cancel the timer and wait for callbacks already in flight."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

        logger.info("Periodic task stopped", task=self._name, ticks=self._ticks)

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            self._fire()

    def _fire(self) -> None:
        self._ticks += 1
        task = asyncio.create_task(self._invoke(), name=f"{self._name}:tick-{self._ticks}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception as e:
            # A failing tick must not kill the timer
            logger.error("Periodic task callback failed", task=self._name, exc_info=e)
