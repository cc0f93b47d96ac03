"""Test doubles shared across unit tests."""

from __future__ import annotations

import asyncio
from typing import Any

from resilient.core.clock import ManualClock


class RecordingSleep:
    """Sleep replacement that never suspends and remembers every delay."""

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(delay)


class SteppedSleep:
    """Sleep replacement that blocks until ``release()`` hands out a token."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._tokens: asyncio.Queue[None] = asyncio.Queue()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await self._tokens.get()

    def release(self, times: int = 1) -> None:
        for _ in range(times):
            self._tokens.put_nowait(None)


class ScriptedHandler:
    """Operation handler raising the queued errors in order, then succeeding."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> str:
        self.calls.append(payload)
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class FailingHandler:
    """Operation handler that always raises ``error``."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> None:
        self.calls.append(payload)
        raise self.error


class BlockingHandler:
    """Operation handler that suspends until ``release`` is set."""

    def __init__(self, error: Exception | None = None) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, payload: dict[str, Any]) -> str:
        self.calls.append(payload)
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return "ok"


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)
