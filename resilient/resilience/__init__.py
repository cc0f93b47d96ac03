from __future__ import annotations

from . import predicates
from .circuit_breaker import CircuitBreaker
from .config import CircuitBreakerConfig, RetryPolicy, always_retry
from .retry import (
    JITTER_RATIO,
    RetryOutcome,
    compute_backoff_delay,
    execute_with_retry,
    retry,
    wait_backoff_jitter,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "JITTER_RATIO",
    "RetryOutcome",
    "RetryPolicy",
    "always_retry",
    "compute_backoff_delay",
    "execute_with_retry",
    "predicates",
    "retry",
    "wait_backoff_jitter",
]
