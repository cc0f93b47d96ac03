from __future__ import annotations

from typing import TYPE_CHECKING

from redis.asyncio import ConnectionPool, Redis

from ...logger import get_logger
from .base import BaseRedisClient

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .config import RedisConfig

logger: BoundLogger = get_logger(__name__)


class RedisStandaloneClient(BaseRedisClient):
    """Single-node Redis client with an explicitly owned connection pool.

    Examples
    --------
    >>> client = RedisStandaloneClient(RedisConfig())
    >>> await client.ainitialize()
    >>> await client.aclose()
    """

    def __init__(self, config: RedisConfig) -> None:
        super().__init__(config)
        self._pool: ConnectionPool | None = None

    async def ainitialize(self) -> None:
        async with self._init_lock:
            if self._client is not None:
                return

            self._pool = ConnectionPool(**self.config.get_connection_pool_kwargs())
            self._client = Redis(connection_pool=self._pool)

            try:
                await self._client.ping()  # type: ignore[misc]
            except Exception as e:
                logger.error("Failed to initialize Redis client", exc_info=e)
                await self.aclose()
                raise

            logger.info(
                "Redis client initialized",
                host=self.config.connection.host,
                port=self.config.connection.port,
                db=self.config.connection.db,
                ssl_enabled=self.config.ssl.enabled,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None

        logger.info("Redis client closed")
