from __future__ import annotations

from .backends import InMemoryBackend, KeyValueBackend, RedisBackend
from .config import StoreConfig
from .domain import (
    OperationKind,
    PersistedFailureRecord,
    ReplayReport,
    StoreStats,
    StoreUsage,
)
from .replay import replay_failures
from .schema import SCHEMA_VERSION, build_envelope, migrate_payload
from .service import FailureStore

__all__ = [
    "SCHEMA_VERSION",
    "FailureStore",
    "InMemoryBackend",
    "KeyValueBackend",
    "OperationKind",
    "PersistedFailureRecord",
    "RedisBackend",
    "ReplayReport",
    "StoreConfig",
    "StoreStats",
    "StoreUsage",
    "build_envelope",
    "migrate_payload",
    "replay_failures",
]
