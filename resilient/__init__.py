"""Retry-with-backoff execution, a deferred operation queue and a bounded failure store."""

from __future__ import annotations

from .config import ResilienceSettings
from .core import (
    CircuitOpenError,
    ManualClock,
    PermanentOperationError,
    ResilienceError,
    RetriesExhaustedError,
    StorageFullError,
    SystemClock,
    TransientOperationError,
)
from .logger import LoggingConfig, configure_logging, get_logger
from .queue import (
    DrainReport,
    HandlerRegistry,
    OperationCommand,
    OperationQueue,
    QueueConfig,
    QueueStatus,
    QueueWorker,
)
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryOutcome,
    RetryPolicy,
    compute_backoff_delay,
    execute_with_retry,
    retry,
)
from .runtime import ResilienceRuntime
from .store import (
    FailureStore,
    InMemoryBackend,
    OperationKind,
    PersistedFailureRecord,
    RedisBackend,
    StoreConfig,
    replay_failures,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "DrainReport",
    "FailureStore",
    "HandlerRegistry",
    "InMemoryBackend",
    "LoggingConfig",
    "ManualClock",
    "OperationCommand",
    "OperationKind",
    "OperationQueue",
    "PermanentOperationError",
    "PersistedFailureRecord",
    "QueueConfig",
    "QueueStatus",
    "QueueWorker",
    "RedisBackend",
    "ResilienceError",
    "ResilienceRuntime",
    "ResilienceSettings",
    "RetriesExhaustedError",
    "RetryOutcome",
    "RetryPolicy",
    "StorageFullError",
    "StoreConfig",
    "SystemClock",
    "TransientOperationError",
    "compute_backoff_delay",
    "configure_logging",
    "execute_with_retry",
    "get_logger",
    "replay_failures",
    "retry",
]
