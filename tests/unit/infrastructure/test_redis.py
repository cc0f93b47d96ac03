from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr, ValidationError
from redis.asyncio.connection import SSLConnection

from resilient.core.enums import HealthCheckStatus
from resilient.infrastructure.redis import standalone
from resilient.infrastructure.redis.config import (
    RedisConfig,
    RedisConnectionSettings,
    RedisPoolSettings,
    RedisSSLSettings,
)
from resilient.infrastructure.redis.standalone import RedisStandaloneClient

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def fake_redis() -> MagicMock:
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def fake_pool() -> MagicMock:
    pool = MagicMock()
    pool.aclose = AsyncMock()
    return pool


@pytest.fixture
def patched_driver(monkeypatch: pytest.MonkeyPatch, fake_redis: MagicMock, fake_pool: MagicMock) -> MagicMock:
    pool_factory = MagicMock(return_value=fake_pool)
    monkeypatch.setattr(standalone, "ConnectionPool", pool_factory)
    monkeypatch.setattr(standalone, "Redis", MagicMock(return_value=fake_redis))
    return pool_factory


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestRedisConfig:
    def test_default_url(self) -> None:
        assert RedisConfig().url == "redis://localhost:6379/0"

    def test_url_with_credentials_and_tls(self) -> None:
        config = RedisConfig(
            connection=RedisConnectionSettings(host="cache", port=6380, db=2, username="app", password=SecretStr("pw")),
            ssl=RedisSSLSettings(enabled=True),
        )

        assert config.url == "rediss://app:pw@cache:6380/2"

    def test_pool_kwargs_unwrap_secret(self) -> None:
        config = RedisConfig(
            connection=RedisConnectionSettings(password=SecretStr("secret")),
            pool=RedisPoolSettings(max_connections=4),
        )

        kwargs = config.get_connection_pool_kwargs()

        assert kwargs["host"] == "localhost"
        assert kwargs["password"] == "secret"
        assert kwargs["max_connections"] == 4
        assert kwargs["decode_responses"] is True
        assert "connection_class" not in kwargs

    def test_tls_switches_connection_class(self) -> None:
        config = RedisConfig(ssl=RedisSSLSettings(enabled=True, ca_certs="/etc/ssl/redis-ca.pem"))

        kwargs = config.get_connection_pool_kwargs()

        assert kwargs["connection_class"] is SSLConnection
        assert kwargs["ssl_ca_certs"] == "/etc/ssl/redis-ca.pem"
        assert kwargs["ssl_cert_reqs"] == "required"
        assert kwargs["ssl_check_hostname"] is True
        assert "ssl" not in kwargs

    def test_rejects_invalid_port(self) -> None:
        with pytest.raises(ValidationError):
            RedisConnectionSettings(port=70000)


class TestRedisStandaloneClient:
    @pytest.mark.asyncio
    async def test_initialize_pings_server(self, patched_driver: MagicMock, fake_redis: MagicMock) -> None:
        client = RedisStandaloneClient(RedisConfig())

        await client.ainitialize()

        assert client.initialized is True
        fake_redis.ping.assert_awaited_once()
        patched_driver.assert_called_once()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, patched_driver: MagicMock) -> None:
        client = RedisStandaloneClient(RedisConfig())

        await client.ainitialize()
        await client.ainitialize()

        patched_driver.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_ping_releases_resources(
        self, patched_driver: MagicMock, fake_redis: MagicMock, fake_pool: MagicMock
    ) -> None:
        fake_redis.ping = AsyncMock(side_effect=ConnectionRefusedError("refused"))
        client = RedisStandaloneClient(RedisConfig())

        with pytest.raises(ConnectionRefusedError):
            await client.ainitialize()

        assert client.initialized is False
        fake_redis.aclose.assert_awaited_once()
        fake_pool.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check_states(self, patched_driver: MagicMock, fake_redis: MagicMock) -> None:
        client = RedisStandaloneClient(RedisConfig())
        assert await client.ahealth_check() is HealthCheckStatus.INITIALIZING

        await client.ainitialize()
        assert await client.ahealth_check() is HealthCheckStatus.HEALTHY

        fake_redis.ping = AsyncMock(side_effect=ConnectionError("gone"))
        assert await client.ahealth_check() is HealthCheckStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_get_client_requires_initialization(self) -> None:
        client = RedisStandaloneClient(RedisConfig())

        with pytest.raises(RuntimeError, match="not initialized"):
            async with client.aget_client():
                pass

    @pytest.mark.asyncio
    async def test_get_client_yields_connected_client(self, patched_driver: MagicMock, fake_redis: MagicMock) -> None:
        client = RedisStandaloneClient(RedisConfig())
        await client.ainitialize()

        async with client.aget_client() as redis:
            assert redis is fake_redis

    @pytest.mark.asyncio
    async def test_close_resets_state(self, patched_driver: MagicMock, fake_pool: MagicMock) -> None:
        client = RedisStandaloneClient(RedisConfig())
        await client.ainitialize()

        await client.aclose()

        assert client.initialized is False
        fake_pool.aclose.assert_awaited_once()
