from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationKind(StrEnum):
    """Built-in mutation kinds. Any other non-empty tag is accepted as well."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PersistedFailureRecord(BaseModel):
    """A failed mutation kept for later replay.

    Serialises (``by_alias=True``) to the flat layout
    ``id, type, payload, timestamp, retryCount, lastError, priority``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    id: str = Field(min_length=1)
    operation_kind: str = Field(alias="type", min_length=1)
    payload_snapshot: dict[str, Any] = Field(
        alias="payload",
        description="Plain data needed to replay the operation",
    )
    failed_at: datetime = Field(
        alias="timestamp",
        description="First failure, refreshed on each failed replay",
    )
    retry_count: int = Field(default=0, ge=0, alias="retryCount")
    last_error: str | None = Field(default=None, alias="lastError")
    priority: int = Field(default=0)

    @field_validator("failed_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Legacy records were written without an offset.
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def replay_order_key(self) -> tuple[int, datetime]:
        return (-self.priority, self.failed_at)


class StoreStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    replayable: int = 0
    exhausted: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None


class StoreUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    used_bytes: int = 0
    quota_bytes: int | None = None
    usage_percentage: float | None = None


class ReplayReport(BaseModel):
    """Summary of one recovery pass over the store."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
