from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Coroutine
from functools import wraps
from typing import TYPE_CHECKING, Any, Generic, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from ..core.errors import RetriesExhaustedError
from ..core.types import P, R, SleepFunc
from ..logger import get_logger
from .config import RetryPolicy
from .types import BeforeSleepCallback, ExhaustedCallback

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

logger: BoundLogger = get_logger(__name__)

JITTER_RATIO = 0.25


def compute_backoff_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: random.Random | None = None,
) -> float:
    """Delay to wait after failed attempt number ``attempt`` (1-based).

    ``min(max_delay, base_delay * exponential_base ** (attempt - 1))``, then,
    when jitter is on, perturbed uniformly by up to +/-25% and floored at 0.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")

    try:
        exponential = policy.base_delay * policy.exponential_base ** (attempt - 1)
    except OverflowError:
        exponential = policy.max_delay
    delay = min(policy.max_delay, exponential)

    if policy.jitter:
        spread = delay * JITTER_RATIO
        delay = max(0.0, delay + (rng or random).uniform(-spread, spread))

    return delay


class wait_backoff_jitter(wait_base):  # noqa: N801 - tenacity naming convention
    """Tenacity wait strategy backed by :func:`compute_backoff_delay`."""

    def __init__(self, policy: RetryPolicy, rng: random.Random | None = None) -> None:
        self._policy = policy
        self._rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_backoff_delay(self._policy, retry_state.attempt_number, self._rng)


class RetryOutcome(BaseModel, Generic[R]):
    """Result of one executor invocation. ``value`` iff succeeded, ``error`` iff not."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    succeeded: bool
    value: R | None = None
    error: Exception | None = None
    attempts_used: int = Field(ge=1)
    elapsed: float = Field(default=0.0, ge=0, description="Wall time in seconds")

    @model_validator(mode="after")
    def _check_consistency(self) -> Self:
        if self.succeeded and self.error is not None:
            raise ValueError("successful outcome cannot carry an error")
        if not self.succeeded and self.error is None:
            raise ValueError("failed outcome must carry the last error")
        return self

    @classmethod
    def success(cls, value: R, attempts_used: int, elapsed: float = 0.0) -> RetryOutcome[R]:
        return cls(succeeded=True, value=value, attempts_used=attempts_used, elapsed=elapsed)

    @classmethod
    def failure(cls, error: Exception, attempts_used: int, elapsed: float = 0.0) -> RetryOutcome[R]:
        return cls(succeeded=False, error=error, attempts_used=attempts_used, elapsed=elapsed)

    def unwrap(self) -> R | None:
        """Return the value or raise :class:`RetriesExhaustedError` from the last error."""
        if self.succeeded:
            return self.value
        raise RetriesExhaustedError(self.attempts_used, self.error) from self.error


def _log_before_sleep(operation_name: str) -> BeforeSleepCallback:
    def callback(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Attempt failed, retrying",
            operation=operation_name,
            attempt=retry_state.attempt_number,
            delay_seconds=round(delay, 3),
            error=str(error),
        )

    return callback


async def execute_with_retry(
    operation: Callable[[], Awaitable[R]],
    policy: RetryPolicy | None = None,
    *,
    sleep: SleepFunc = asyncio.sleep,
    rng: random.Random | None = None,
    before_sleep: BeforeSleepCallback | None = None,
    on_exhausted: ExhaustedCallback | None = None,
    operation_name: str = "operation",
) -> RetryOutcome[R]:
    """Run ``operation`` until it succeeds or the policy gives up.

    The predicate is consulted before the attempt counter, so a rejected
    error ends the run even when attempts remain. The last error is always
    returned in the outcome, never swallowed.

    Parameters
    ----------
    operation : Callable[[], Awaitable[R]]
        Zero-argument coroutine function performing a single attempt.
    policy : RetryPolicy | None
        Retry policy. Defaults to ``RetryPolicy()``.
    sleep : SleepFunc
        Suspension primitive between attempts.
    rng : random.Random | None
        Source of jitter, injectable for deterministic tests.
    before_sleep : BeforeSleepCallback | None
        Hook run before each suspension. Defaults to a structured log line.
    on_exhausted : ExhaustedCallback | None
        Called with the last error when the run ends in failure, whether the
        attempts ran out or the predicate rejected the error.
    operation_name : str
        Name used in log events.

    Returns
    -------
    RetryOutcome[R]
        Success with the value, or failure with the last error.
    """
    effective_policy = policy or RetryPolicy()
    started = time.monotonic()
    attempts_used = 0

    retrying = AsyncRetrying(
        stop=stop_after_attempt(effective_policy.max_attempts),
        wait=wait_backoff_jitter(effective_policy, rng),
        retry=retry_if_exception(effective_policy.should_retry),
        sleep=sleep,
        before_sleep=before_sleep or _log_before_sleep(operation_name),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                attempts_used += 1
                value = await operation()
    except Exception as e:
        elapsed = time.monotonic() - started
        logger.error(
            "Operation failed permanently",
            operation=operation_name,
            attempts=attempts_used,
            error_type=type(e).__name__,
            error=str(e),
        )
        if on_exhausted is not None:
            on_exhausted(e)
        return RetryOutcome.failure(e, attempts_used, elapsed)

    elapsed = time.monotonic() - started
    if attempts_used > 1:
        logger.info("Operation succeeded after retry", operation=operation_name, attempts=attempts_used)
    return RetryOutcome.success(value, attempts_used, elapsed)


def retry(
    policy: RetryPolicy | None = None,
    *,
    sleep: SleepFunc = asyncio.sleep,
    rng: random.Random | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]]:
    """Decorator form of :func:`execute_with_retry` for coroutine functions.

    The decorated function returns the value, or re-raises the last error
    once the policy gives up.
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, Coroutine[Any, Any, R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            outcome = await execute_with_retry(
                lambda: func(*args, **kwargs),
                policy,
                sleep=sleep,
                rng=rng,
                operation_name=func.__qualname__,
            )
            if outcome.error is None:
                return outcome.value  # type: ignore[return-value]
            raise outcome.error

        return wrapper

    return decorator
