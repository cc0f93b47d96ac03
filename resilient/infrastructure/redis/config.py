from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from redis.asyncio.connection import SSLConnection


class RedisConnectionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, ge=1, le=65535, description="Redis port")
    db: int = Field(default=0, ge=0, le=15, description="Redis database number")
    username: str | None = Field(default=None, description="Redis ACL username")
    password: SecretStr | None = Field(default=None, description="Redis password")


class RedisSSLSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Enable TLS")
    ca_certs: str | None = Field(default=None, description="CA bundle used to verify the server")
    cert_reqs: Literal["none", "optional", "required"] = Field(
        default="required",
        description="Server certificate verification mode",
    )
    check_hostname: bool = Field(default=True, description="Match the certificate against the host name")


class RedisPoolSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_connections: int = Field(default=10, ge=1, le=1000, description="Maximum connections in pool")
    health_check_interval: int = Field(default=30, ge=1, le=300, description="Seconds between pool health checks")


class RedisDriverSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    socket_keepalive: bool = Field(default=True)
    socket_timeout: float = Field(default=1.0, ge=0.1, le=60.0)
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=60.0)
    retry_on_timeout: bool = Field(default=True)
    decode_responses: bool = Field(default=True, description="Return str instead of bytes")


class RedisConfig(BaseModel):
    """Connection settings for the Redis instance holding durable state."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    connection: RedisConnectionSettings = Field(default_factory=RedisConnectionSettings)
    ssl: RedisSSLSettings = Field(default_factory=RedisSSLSettings)
    pool: RedisPoolSettings = Field(default_factory=RedisPoolSettings)
    driver: RedisDriverSettings = Field(default_factory=RedisDriverSettings)

    @property
    def url(self) -> str:
        auth = ""
        if self.connection.password:
            user = self.connection.username or ""
            auth = f"{user}:{self.connection.password.get_secret_value()}@"
        protocol = "rediss" if self.ssl.enabled else "redis"
        return f"{protocol}://{auth}{self.connection.host}:{self.connection.port}/{self.connection.db}"

    def get_connection_pool_kwargs(self) -> dict[str, Any]:
        """Kwargs for ``redis.asyncio.ConnectionPool``."""
        password = self.connection.password.get_secret_value() if self.connection.password else None
        kwargs: dict[str, Any] = {
            **self.connection.model_dump(exclude={"password"}),
            "password": password,
            **self.pool.model_dump(),
            **self.driver.model_dump(),
        }
        if self.ssl.enabled:
            kwargs.update(
                connection_class=SSLConnection,
                ssl_ca_certs=self.ssl.ca_certs,
                ssl_cert_reqs=self.ssl.cert_reqs,
                ssl_check_hostname=self.ssl.check_hostname,
            )
        return kwargs
