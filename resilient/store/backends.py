from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from redis.exceptions import ResponseError

from ..core.errors import StorageFullError
from ..logger import get_logger

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from ..infrastructure.redis.base import BaseRedisClient

logger: BoundLogger = get_logger(__name__)


class KeyValueBackend(Protocol):
    """Durable string key-value storage.

    ``aset`` raises :class:`StorageFullError` when the write is rejected for
    capacity reasons; every other failure propagates unchanged.
    """

    @property
    def quota_bytes(self) -> int | None: ...

    async def aget(self, key: str) -> str | None: ...

    async def aset(self, key: str, value: str) -> None: ...

    async def adelete(self, key: str) -> None: ...


class InMemoryBackend:
    """Process-local backend with an optional byte quota across all keys."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        if quota_bytes is not None and quota_bytes < 1:
            raise ValueError("quota_bytes must be positive")
        self._data: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    @property
    def quota_bytes(self) -> int | None:
        return self._quota_bytes

    async def aget(self, key: str) -> str | None:
        return self._data.get(key)

    async def aset(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            others = sum(len(v.encode()) for k, v in self._data.items() if k != key)
            needed = others + len(value.encode())
            if needed > self._quota_bytes:
                raise StorageFullError(f"Quota of {self._quota_bytes} bytes exceeded ({needed} bytes requested)")
        self._data[key] = value

    async def adelete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisBackend:
    """Backend storing each value as a plain Redis string.

    Redis answers ``OOM command not allowed ...`` once ``maxmemory`` is hit;
    that response is translated into :class:`StorageFullError`.
    """

    def __init__(self, redis_client: BaseRedisClient, *, quota_bytes: int | None = None) -> None:
        self._redis_client = redis_client
        self._quota_bytes = quota_bytes

    @property
    def quota_bytes(self) -> int | None:
        return self._quota_bytes

    async def aget(self, key: str) -> str | None:
        async with self._redis_client.aget_client() as client:
            raw = await client.get(key)
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else str(raw)

    async def aset(self, key: str, value: str) -> None:
        try:
            async with self._redis_client.aget_client() as client:
                await client.set(key, value)
        except ResponseError as e:
            if str(e).startswith("OOM"):
                logger.warning("Redis rejected write, out of memory", key=key, size=len(value))
                raise StorageFullError(str(e)) from e
            raise

    async def adelete(self, key: str) -> None:
        async with self._redis_client.aget_client() as client:
            await client.delete(key)
