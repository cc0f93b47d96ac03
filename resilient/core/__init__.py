"""Core module exports."""

from __future__ import annotations

from .clock import Clock, ManualClock, SystemClock
from .enums import CircuitState, HealthCheckStatus, OperationState
from .errors import (
    CircuitOpenError,
    DuplicateHandlerError,
    PermanentOperationError,
    ResilienceError,
    RetriesExhaustedError,
    SchemaVersionError,
    StorageFullError,
    StoreImportError,
    TransientOperationError,
    UnknownOperationError,
)
from .scheduler import PeriodicTask

__all__ = [
    "CircuitOpenError",
    "CircuitState",
    "Clock",
    "DuplicateHandlerError",
    "HealthCheckStatus",
    "ManualClock",
    "OperationState",
    "PeriodicTask",
    "PermanentOperationError",
    "ResilienceError",
    "RetriesExhaustedError",
    "SchemaVersionError",
    "StorageFullError",
    "StoreImportError",
    "SystemClock",
    "TransientOperationError",
    "UnknownOperationError",
]
