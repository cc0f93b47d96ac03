from __future__ import annotations

from enum import StrEnum


class HealthCheckStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    INITIALIZING = "initializing"


class OperationState(StrEnum):
    """Whether a queued operation is waiting or has an attempt in flight."""

    PENDING = "pending"
    RUNNING = "running"


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
