from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..core.clock import Clock, SystemClock
from ..core.errors import StorageFullError, StoreImportError
from ..logger import get_logger
from .config import StoreConfig
from .domain import PersistedFailureRecord, StoreStats, StoreUsage
from .schema import build_envelope, migrate_payload

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .backends import KeyValueBackend

logger: BoundLogger = get_logger(__name__)


def describe_error(error: BaseException | str | None) -> str | None:
    if error is None or isinstance(error, str):
        return error
    return str(error) or type(error).__name__


class FailureStore:
    """Durable, bounded log of failed mutations awaiting replay.

    The whole collection lives under one key of a :class:`KeyValueBackend`
    as a versioned JSON document. Every mutation is a read-modify-write of
    that document, serialised by an ``asyncio.Lock`` because backend I/O
    suspends mid-sequence.

    Retention runs on every write: records older than ``max_age`` are
    dropped, then lowest priority (oldest first on ties) are evicted until
    at most ``max_records`` remain. Expired records are also hidden from
    reads before the next write removes them.

    Usage Pattern
    -------------
    ```python
    store = FailureStore(InMemoryBackend(), StoreConfig(max_records=500))

    record_id = await store.store_failure("update", {"email": "a@b.c"}, error, priority=1)

    for record in await store.list_replayable():
        ...
        await store.mark_replayed(record.id)
    ```
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        config: StoreConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or StoreConfig()
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()

    @property
    def config(self) -> StoreConfig:
        return self._config

    async def store_failure(
        self,
        kind: str,
        payload_snapshot: Mapping[str, Any],
        error: BaseException | str | None = None,
        priority: int = 0,
    ) -> str:
        """Append a failure record, enforce retention and persist synchronously.

        Parameters
        ----------
        kind : str
            Operation kind (``OperationKind`` member or caller-defined tag).
        payload_snapshot : Mapping[str, Any]
            Plain JSON-compatible data needed to replay the operation.
        error : BaseException | str | None
            The failure that exhausted the operation.
        priority : int
            Higher priorities are replayed first and evicted last.

        Returns
        -------
        str
            Identifier of the new record.

        Raises
        ------
        StorageFullError
            If the backend is still full after evicting the oldest half.
        """
        now = self._clock.now()
        record = PersistedFailureRecord(
            id=f"rec_{uuid.uuid4().hex}",
            operation_kind=str(kind),
            payload_snapshot=dict(payload_snapshot),
            failed_at=now,
            last_error=describe_error(error),
            priority=priority,
        )

        async with self._lock:
            records = await self._aload()
            records.append(record)
            records = self._enforce_retention(records, now)
            await self._awrite(records, keep_id=record.id)

        logger.warning(
            "Stored failed operation for replay",
            record_id=record.id,
            kind=record.operation_kind,
            priority=priority,
            error=record.last_error,
        )
        return record.id

    async def list_replayable(self) -> list[PersistedFailureRecord]:
        """Snapshot of non-exhausted records, highest priority then oldest first."""
        records = await self._aload()
        return [r for r in records if r.retry_count < self._config.max_replay_attempts]

    async def mark_replayed(self, record_id: str) -> bool:
        """Delete a record after a successful replay."""
        async with self._lock:
            records = await self._aload()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            await self._awrite(remaining)

        logger.info("Removed replayed record", record_id=record_id)
        return True

    async def record_retry_failure(self, record_id: str, error: BaseException | str | None = None) -> bool:
        """Count a failed replay: bump ``retry_count``, keep the error, refresh the timestamp."""
        async with self._lock:
            records = await self._aload()
            for index, record in enumerate(records):
                if record.id == record_id:
                    break
            else:
                return False

            updated = record.model_copy(
                update={
                    "retry_count": record.retry_count + 1,
                    "last_error": describe_error(error),
                    "failed_at": self._clock.now(),
                }
            )
            records[index] = updated
            await self._awrite(sorted(records, key=PersistedFailureRecord.replay_order_key))

        if updated.retry_count >= self._config.max_replay_attempts:
            logger.error(
                "Record exhausted its replay attempts",
                record_id=record_id,
                retry_count=updated.retry_count,
                error=updated.last_error,
            )
        return True

    async def get(self, record_id: str) -> PersistedFailureRecord | None:
        for record in await self._aload():
            if record.id == record_id:
                return record
        return None

    async def list_all(self) -> list[PersistedFailureRecord]:
        return await self._aload()

    async def list_by_kind(self, kind: str) -> list[PersistedFailureRecord]:
        return [r for r in await self._aload() if r.operation_kind == str(kind)]

    async def next_to_replay(self) -> PersistedFailureRecord | None:
        """Highest priority replayable record, fewest failed replays first."""
        replayable = await self.list_replayable()
        if not replayable:
            return None
        return min(replayable, key=lambda r: (-r.priority, r.retry_count))

    async def batch(self, size: int = 10) -> list[PersistedFailureRecord]:
        if size < 1:
            raise ValueError("size must be positive")
        return (await self.list_replayable())[:size]

    async def has_replayable(self) -> bool:
        return bool(await self.list_replayable())

    async def clear(self) -> None:
        async with self._lock:
            await self._backend.adelete(self._config.storage_key)
        logger.info("Cleared failure store", key=self._config.storage_key)

    async def stats(self) -> StoreStats:
        records = await self._aload()
        limit = self._config.max_replay_attempts
        timestamps = sorted(r.failed_at for r in records)
        return StoreStats(
            total=len(records),
            replayable=sum(1 for r in records if r.retry_count < limit),
            exhausted=sum(1 for r in records if r.retry_count >= limit),
            oldest=timestamps[0] if timestamps else None,
            newest=timestamps[-1] if timestamps else None,
        )

    async def usage(self) -> StoreUsage:
        raw = await self._backend.aget(self._config.storage_key) or ""
        used = len(raw.encode())
        quota = self._backend.quota_bytes
        percentage = min(used / quota * 100, 100.0) if quota else None
        return StoreUsage(used_bytes=used, quota_bytes=quota, usage_percentage=percentage)

    async def export_all(self) -> str:
        """Serialise every live record as a versioned JSON document."""
        return json.dumps(build_envelope(await self._aload()), indent=2)

    async def import_all(self, payload: str) -> int:
        """Replace the stored collection with ``payload``.

        Accepts the versioned document produced by :meth:`export_all` and,
        for backups taken before versioning, a bare array of records.
        Nothing is written when validation fails.

        Returns
        -------
        int
            Number of records kept after retention.

        Raises
        ------
        StoreImportError
            If the payload is not valid JSON or matches no known layout.
        """
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.error("Failed to import records, invalid JSON", error=str(e))
            raise StoreImportError(f"Invalid JSON: {e}") from e

        records = self._parse(migrate_payload(raw))

        async with self._lock:
            kept = self._enforce_retention(records, self._clock.now())
            await self._awrite(kept)

        logger.info("Imported failure records", imported=len(records), kept=len(kept))
        return len(kept)

    async def _aload(self) -> list[PersistedFailureRecord]:
        raw = await self._backend.aget(self._config.storage_key)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Persisted records corrupted", key=self._config.storage_key, error=str(e))
            raise StoreImportError(f"Corrupted data under {self._config.storage_key!r}: {e}") from e

        records = self._parse(migrate_payload(data))
        cutoff = self._clock.now() - self._config.max_age
        live = [r for r in records if r.failed_at > cutoff]
        return sorted(live, key=PersistedFailureRecord.replay_order_key)

    def _parse(self, items: list[dict[str, Any]]) -> list[PersistedFailureRecord]:
        try:
            return [PersistedFailureRecord.model_validate(item) for item in items]
        except ValidationError as e:
            logger.error("Invalid failure record structure", error_count=e.error_count())
            raise StoreImportError(f"Invalid record structure: {e}") from e

    def _enforce_retention(
        self,
        records: list[PersistedFailureRecord],
        now: datetime,
    ) -> list[PersistedFailureRecord]:
        cutoff = now - self._config.max_age
        fresh = [r for r in records if r.failed_at > cutoff]
        if len(fresh) < len(records):
            logger.info("Dropped expired records", count=len(records) - len(fresh))

        overflow = len(fresh) - self._config.max_records
        if overflow > 0:
            least_valuable = sorted(fresh, key=lambda r: (r.priority, r.failed_at))[:overflow]
            evicted = {r.id for r in least_valuable}
            fresh = [r for r in fresh if r.id not in evicted]
            logger.info(
                "Evicted records over capacity",
                count=overflow,
                max_records=self._config.max_records,
                record_ids=sorted(evicted),
            )

        return sorted(fresh, key=PersistedFailureRecord.replay_order_key)

    async def _asave(self, records: list[PersistedFailureRecord]) -> None:
        await self._backend.aset(self._config.storage_key, json.dumps(build_envelope(records)))

    async def _awrite(self, records: list[PersistedFailureRecord], *, keep_id: str | None = None) -> None:
        """Persist ``records``; on a capacity error evict the oldest half and retry once."""
        try:
            await self._asave(records)
            return
        except StorageFullError:
            survivors = self._evict_oldest_half(records, keep_id)
            logger.warning(
                "Storage quota exceeded, evicting oldest half",
                before=len(records),
                after=len(survivors),
            )

        try:
            await self._asave(survivors)
        except StorageFullError:
            logger.error("Failed to save records even after eviction", count=len(survivors))
            raise

    @staticmethod
    def _evict_oldest_half(
        records: list[PersistedFailureRecord],
        keep_id: str | None,
    ) -> list[PersistedFailureRecord]:
        candidates = sorted((r for r in records if r.id != keep_id), key=lambda r: r.failed_at)
        evicted = {r.id for r in candidates[: len(records) // 2]}
        return [r for r in records if r.id not in evicted]
