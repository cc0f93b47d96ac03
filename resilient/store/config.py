from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field


class StoreConfig(BaseModel):
    """Retention and layout of the persistent failure store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    storage_key: str = Field(
        default="resilient:failed_operations",
        min_length=1,
        description="Key holding the whole record collection in the key-value backend",
    )
    max_records: int = Field(
        default=1000,
        ge=1,
        description="Maximum records kept (lowest priority, then oldest, evicted first)",
    )
    max_age: timedelta = Field(
        default=timedelta(days=30),
        description="Records older than this are dropped",
    )
    max_replay_attempts: int = Field(
        default=5,
        ge=1,
        description="Records with this many failed replays are no longer replayable",
    )

    @property
    def max_age_seconds(self) -> float:
        return self.max_age.total_seconds()
