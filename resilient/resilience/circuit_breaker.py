"""Circuit breaker on top of the backoff executor.

A breaker counts failed *runs*: one call that exhausts its retry policy is
one failure. After ``failure_threshold`` consecutive failed runs the circuit
opens and further calls are rejected with :class:`CircuitOpenError` without
touching the operation. Once ``reset_timeout`` seconds have passed since the
last failure, the next call closes the circuit and runs normally.

State transitions
-----------------
- CLOSED -> OPEN: threshold reached
- OPEN -> CLOSED: first call after the reset timeout
- CLOSED: any successful run clears the failure count
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

from ..core.clock import Clock, SystemClock
from ..core.enums import CircuitState
from ..core.errors import CircuitOpenError
from ..core.types import R, SleepFunc
from ..logger import get_logger
from .config import CircuitBreakerConfig, RetryPolicy
from .retry import execute_with_retry

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

logger: BoundLogger = get_logger(__name__)


class CircuitBreaker:
    """Per-operation circuit breaker wrapping :func:`execute_with_retry`.

    Parameters
    ----------
    name : str
        Operation name, used in errors and log events.
    config : CircuitBreakerConfig | None
        Threshold and reset timeout.
    policy : RetryPolicy | None
        Retry policy for each guarded run.
    clock : Clock | None
        Time source for the reset timeout.
    sleep : SleepFunc
        Suspension primitive handed to the executor.
    rng : random.Random | None
        Jitter source handed to the executor.

    Usage Pattern
    -------------
    ```python
    breaker = CircuitBreaker("sheets.append", CircuitBreakerConfig(failure_threshold=3))

    try:
        row = await breaker.call(lambda: sheet.append(payload))
    except CircuitOpenError as e:
        logger.warning("Sheets unavailable", retry_in=e.retry_in)
    ```
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        *,
        policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.policy = policy
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self._rng = rng
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: datetime | None = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def retry_in(self) -> float:
        """Seconds until an open circuit accepts calls again (0 when closed)."""
        if self._state is CircuitState.CLOSED or self._last_failure_at is None:
            return 0.0
        elapsed = (self._clock.now() - self._last_failure_at).total_seconds()
        return max(0.0, self.config.reset_timeout - elapsed)

    def reset(self) -> None:
        if self._state is CircuitState.OPEN:
            logger.info("Circuit breaker reset", name=self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0

    async def call(self, operation: Callable[[], Awaitable[R]]) -> R:
        """Run ``operation`` with retries unless the circuit is open.

        Raises
        ------
        CircuitOpenError
            If the circuit is open and the reset timeout has not elapsed.
        Exception
            The last error of a failed run, after it was counted.
        """
        if self._state is CircuitState.OPEN:
            remaining = self.retry_in()
            if remaining > 0:
                logger.warning("Circuit breaker open, rejecting call", name=self.name, retry_in=round(remaining, 3))
                raise CircuitOpenError(self.name, remaining)
            self.reset()

        outcome = await execute_with_retry(
            operation,
            self.policy,
            sleep=self._sleep,
            rng=self._rng,
            operation_name=self.name,
        )
        if outcome.error is None:
            self._failure_count = 0
            return outcome.value  # type: ignore[return-value]

        self._record_failure(outcome.error)
        raise outcome.error

    def _record_failure(self, error: Exception) -> None:
        self._failure_count += 1
        self._last_failure_at = self._clock.now()

        if self._failure_count >= self.config.failure_threshold:
            if self._state is CircuitState.CLOSED:
                logger.error(
                    "Circuit breaker opened",
                    name=self.name,
                    failures=self._failure_count,
                    threshold=self.config.failure_threshold,
                    error=str(error),
                )
            self._state = CircuitState.OPEN
            return

        logger.warning(
            "Circuit breaker recorded failure",
            name=self.name,
            failures=self._failure_count,
            threshold=self.config.failure_threshold,
        )
