from __future__ import annotations

from .config import QueueConfig
from .domain import DrainReport, OperationCommand, QueuedOperation, QueueStatus
from .registry import HandlerRegistry, OperationHandler
from .service import QUEUE_STATE_VERSION, OperationQueue
from .worker import QueueWorker

__all__ = [
    "QUEUE_STATE_VERSION",
    "DrainReport",
    "HandlerRegistry",
    "OperationCommand",
    "OperationHandler",
    "OperationQueue",
    "QueueConfig",
    "QueueStatus",
    "QueueWorker",
    "QueuedOperation",
]
