from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import OperationState
from ..resilience.config import RetryPolicy


class OperationCommand(BaseModel):
    """Serialisable description of a deferred operation.

    ``kind`` selects the handler in the registry, ``payload`` is handed to it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class QueuedOperation(BaseModel):
    """A deferred operation and its private attempt schedule."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(min_length=1)
    command: OperationCommand
    policy: RetryPolicy
    priority: int = 0
    attempts_used: int = Field(default=0, ge=0)
    max_attempts: int = Field(ge=1)
    next_eligible_at: datetime
    created_at: datetime
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    durable: bool = False
    handoff_pending: bool = Field(
        default=False,
        description="Exhausted, but the failure store rejected the handoff; only the handoff is retried",
    )
    state: OperationState = OperationState.PENDING
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def exhausted(self) -> bool:
        return self.attempts_used >= self.max_attempts

    def is_eligible(self, now: datetime) -> bool:
        return self.next_eligible_at <= now

    def sort_key(self) -> tuple[int, datetime, datetime, str]:
        return (-self.priority, self.next_eligible_at, self.created_at, self.id)


class QueueStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    pending: int
    next_eligible_at: datetime | None = None


class DrainReport(BaseModel):
    """Counts for one drain pass. ``skipped`` means another pass was running."""

    skipped: bool = False
    attempted: int = 0
    succeeded: int = 0
    deferred: int = 0
    exhausted: int = 0
    handed_off: int = 0
    handoff_failed: int = 0
    discarded: int = 0
