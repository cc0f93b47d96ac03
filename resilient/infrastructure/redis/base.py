from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, cast

from redis.asyncio import Redis
from redis.commands.core import AsyncCoreCommands

from ...core.enums import HealthCheckStatus
from ...logger import get_logger

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .config import RedisConfig

logger: BoundLogger = get_logger(__name__)

type RedisCommands = AsyncCoreCommands[str]


class BaseRedisClient(ABC):
    """Lifecycle and access shared by Redis client flavours."""

    def __init__(self, config: RedisConfig) -> None:
        self.config = config
        self._client: Redis | None = None
        self._init_lock = asyncio.Lock()

    @abstractmethod
    async def ainitialize(self) -> None:
        """Connect and verify the server answers."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release connections."""

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def ahealth_check(self) -> HealthCheckStatus:
        if self._client is None:
            return HealthCheckStatus.INITIALIZING

        try:
            await self._client.ping()  # type: ignore[misc]
            return HealthCheckStatus.HEALTHY
        except Exception as e:
            logger.error("Redis health check failed", exc_info=e)
            return HealthCheckStatus.UNHEALTHY

    @asynccontextmanager
    async def aget_client(self) -> AsyncIterator[RedisCommands]:
        """Yield the connected client.

        Raises
        ------
        RuntimeError
            If ``ainitialize()`` has not been called.
        """
        if self._client is None:
            raise RuntimeError("Redis client not initialized")

        try:
            yield cast(RedisCommands, self._client)
        except Exception as e:
            logger.error("Redis operation failed", exc_info=e)
            raise
