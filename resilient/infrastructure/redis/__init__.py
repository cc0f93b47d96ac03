from __future__ import annotations

from .base import BaseRedisClient, RedisCommands
from .config import (
    RedisConfig,
    RedisConnectionSettings,
    RedisDriverSettings,
    RedisPoolSettings,
    RedisSSLSettings,
)
from .standalone import RedisStandaloneClient

__all__ = [
    "BaseRedisClient",
    "RedisCommands",
    "RedisConfig",
    "RedisConnectionSettings",
    "RedisDriverSettings",
    "RedisPoolSettings",
    "RedisSSLSettings",
    "RedisStandaloneClient",
]
