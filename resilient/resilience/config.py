from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def always_retry(_error: Exception) -> bool:
    return True


class RetryPolicy(BaseModel):
    """Immutable retry policy shared by the executor, the queue and replay.

    Delays are seconds. Only the numeric fields are serialised; the predicate
    and the exception filters are process-local and are re-bound from the
    handler registry when a persisted queue is restored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1, description="Maximum attempts, first try included")
    base_delay: float = Field(default=1.0, ge=0, description="Delay before the second attempt, in seconds")
    max_delay: float = Field(default=30.0, ge=0, description="Upper bound for any single delay, in seconds")
    exponential_base: float = Field(default=2.0, gt=1, description="Growth factor between consecutive delays")
    jitter: bool = Field(default=True, description="Perturb each delay uniformly within +/-25%")

    retry_predicate: Callable[[Exception], bool] = Field(
        default=always_retry,
        exclude=True,
        description="Decides whether an error is worth another attempt",
    )
    retry_on_exceptions: tuple[type[Exception], ...] | None = Field(
        default=None,
        exclude=True,
        description="Exception types that trigger retry (None = all exceptions)",
    )
    never_retry_on: tuple[type[Exception], ...] | None = Field(
        default=None,
        exclude=True,
        description="Exception types never retried (takes precedence over everything else)",
    )

    def should_retry(self, error: BaseException) -> bool:
        """Evaluate the retry filters for ``error``.

        ``BaseException`` subclasses that are not ``Exception`` (cancellation,
        interpreter exit) are never retried.
        """
        if not isinstance(error, Exception):
            return False
        if self.never_retry_on and isinstance(error, self.never_retry_on):
            return False
        if self.retry_on_exceptions and not isinstance(error, self.retry_on_exceptions):
            return False
        return bool(self.retry_predicate(error))

    def snapshot(self) -> dict[str, Any]:
        """Serialisable numeric part of the policy."""
        return self.model_dump(mode="json")

    def with_numbers_from(self, snapshot: dict[str, Any]) -> RetryPolicy:
        """Copy of this policy with the numeric fields taken from ``snapshot``."""
        numbers = RetryPolicy.model_validate(snapshot)
        return self.model_copy(update=numbers.snapshot())


class CircuitBreakerConfig(BaseModel):
    """Thresholds for :class:`~resilient.resilience.circuit_breaker.CircuitBreaker`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failed runs (retries included) that open the circuit",
    )
    reset_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds after the last failure before an open circuit closes again",
    )
