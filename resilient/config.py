from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .infrastructure.redis.config import RedisConfig
from .queue.config import QueueConfig
from .resilience.config import CircuitBreakerConfig
from .store.config import StoreConfig

type BackendKind = Literal["memory", "redis"]


class ResilienceSettings(BaseSettings):
    """Top-level settings, read from ``RESILIENT_*`` environment variables.

    Nested fields use ``__`` as delimiter, e.g.
    ``RESILIENT_STORE__MAX_RECORDS=500`` or
    ``RESILIENT_REDIS__CONNECTION__HOST=cache``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RESILIENT_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    backend: BackendKind = Field(default="memory", description="Durable key-value backend")
    queue: QueueConfig = Field(default_factory=QueueConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
