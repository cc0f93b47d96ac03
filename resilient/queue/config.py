from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ..resilience.config import RetryPolicy


class QueueConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    drain_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between drain passes",
    )
    persist_state: bool = Field(
        default=False,
        description="Checkpoint pending entries to the key-value backend after each pass",
    )
    state_key: str = Field(
        default="resilient:operation_queue",
        min_length=1,
        description="Backend key holding the queue checkpoint",
    )
    default_policy: RetryPolicy = Field(
        default_factory=RetryPolicy,
        description="Policy for kinds without a registered policy (permanent errors are never retried)",
    )
