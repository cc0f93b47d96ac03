from __future__ import annotations

import json
import random
import uuid
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..core.clock import Clock, SystemClock
from ..core.enums import OperationState
from ..core.errors import PermanentOperationError, SchemaVersionError, StoreImportError, UnknownOperationError
from ..logger import get_logger
from ..resilience.config import RetryPolicy
from ..resilience.retry import compute_backoff_delay
from .config import QueueConfig
from .domain import DrainReport, OperationCommand, QueuedOperation, QueueStatus

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from ..store.backends import KeyValueBackend
    from ..store.service import FailureStore
    from .registry import HandlerRegistry

logger: BoundLogger = get_logger(__name__)

QUEUE_STATE_VERSION = 1


class OperationQueue:
    """Priority queue of deferred operations, drained one attempt per entry per pass.

    Entries are kept in an id-keyed map plus an order list that is always
    sorted by ``(priority desc, next_eligible_at asc)``. The order is
    recomputed after every enqueue and after every attempt.

    ``enqueue`` and ``remove`` never suspend and may be called while a drain
    pass is running: the pass iterates over a snapshot taken when it starts
    and re-checks membership before and after each attempt. An entry removed
    while its attempt is in flight has the result of that attempt discarded.

    An exhausted entry marked ``durable`` is handed to the failure store. If
    that handoff fails, the entry stays queued with ``handoff_pending`` set
    and later passes retry only the handoff, so a durable operation is never
    dropped unrecorded.

    Usage Pattern
    -------------
    ```python
    registry = HandlerRegistry()
    registry.register("update", sync_user)

    queue = OperationQueue(registry, QueueConfig(), failure_store=store)
    op_id = queue.enqueue(OperationCommand(kind="update", payload=user), priority=10, durable=True)

    report = await queue.drain()
    ```
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        config: QueueConfig | None = None,
        *,
        clock: Clock | None = None,
        failure_store: FailureStore | None = None,
        backend: KeyValueBackend | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or QueueConfig()
        self._clock = clock or SystemClock()
        self._failure_store = failure_store
        self._backend = backend
        self._rng = rng
        self._entries: dict[str, QueuedOperation] = {}
        self._order: list[str] = []
        self._draining = False
        self._skipped_passes = 0

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def skipped_passes(self) -> int:
        """Drain requests rejected because a pass was already running."""
        return self._skipped_passes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._entries

    def enqueue(
        self,
        command: OperationCommand,
        policy: RetryPolicy | None = None,
        priority: int = 0,
        metadata: Mapping[str, str] | None = None,
        *,
        durable: bool = False,
    ) -> str:
        """Register a deferred operation without attempting it.

        Parameters
        ----------
        command : OperationCommand
            Kind and payload. The kind must have a registered handler.
        policy : RetryPolicy | None
            Attempt budget and backoff. Falls back to the kind's registered
            policy, then to the queue's default policy.
        priority : int
            Higher runs first.
        metadata : Mapping[str, str] | None
            Free-form diagnostics attached to the entry.
        durable : bool
            Hand the operation to the failure store if it exhausts.

        Returns
        -------
        str
            Identifier of the new entry.

        Raises
        ------
        UnknownOperationError
            If no handler is registered for ``command.kind``.
        ValueError
            If ``durable`` is requested but the queue has no failure store.
        """
        if command.kind not in self._registry:
            raise UnknownOperationError(command.kind)
        if durable and self._failure_store is None:
            raise ValueError("durable operations require a failure store")

        effective_policy = policy or self._registry.policy_for(command.kind) or self._config.default_policy
        now = self._clock.now()
        entry = QueuedOperation(
            id=f"op_{uuid.uuid4().hex}",
            command=command,
            policy=effective_policy,
            priority=priority,
            max_attempts=effective_policy.max_attempts,
            next_eligible_at=now,
            created_at=now,
            durable=durable,
            metadata=dict(metadata or {}),
        )

        self._entries[entry.id] = entry
        self._resort()

        logger.info(
            "Queued operation",
            operation_id=entry.id,
            kind=command.kind,
            priority=priority,
            durable=durable,
        )
        return entry.id

    def remove(self, operation_id: str) -> bool:
        """Cancel an entry. Returns False when it is not (or no longer) queued."""
        entry = self._discard(operation_id)
        if entry is None:
            return False

        logger.info(
            "Removed operation from queue",
            operation_id=operation_id,
            in_flight=entry.state is OperationState.RUNNING,
        )
        return True

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._order.clear()
        logger.info("Operation queue cleared", removed=count)
        return count

    def get(self, operation_id: str) -> QueuedOperation | None:
        entry = self._entries.get(operation_id)
        return entry.model_copy(deep=True) if entry else None

    def entries(self) -> list[QueuedOperation]:
        """Copies of every entry, in drain order."""
        return [self._entries[op_id].model_copy(deep=True) for op_id in self._order]

    def status(self) -> QueueStatus:
        now = self._clock.now()
        waiting = [e.next_eligible_at for e in self._entries.values() if not e.is_eligible(now)]
        return QueueStatus(
            total=len(self._entries),
            pending=len(self._entries) - len(waiting),
            next_eligible_at=min(waiting) if waiting else None,
        )

    async def drain(self) -> DrainReport:
        """Run one pass over the entries eligible now, at most one attempt each."""
        if self._draining:
            self._skipped_passes += 1
            logger.debug("Drain pass already running, skipping", skipped_passes=self._skipped_passes)
            return DrainReport(skipped=True)

        self._draining = True
        report = DrainReport()
        try:
            now = self._clock.now()
            snapshot = [self._entries[op_id] for op_id in self._order if self._entries[op_id].is_eligible(now)]
            for entry in snapshot:
                if entry.id not in self._entries:
                    continue
                if entry.handoff_pending:
                    await self._hand_off(entry, report)
                else:
                    await self._attempt(entry, report)
                self._resort()
        finally:
            self._draining = False
            self._resort()

        if report.attempted or report.handed_off or report.handoff_failed:
            logger.info("Drain pass complete", **report.model_dump(exclude={"skipped"}), remaining=len(self))
        return report

    async def _attempt(self, entry: QueuedOperation, report: DrainReport) -> None:
        entry.attempts_used += 1
        entry.last_attempt_at = self._clock.now()
        entry.state = OperationState.RUNNING
        report.attempted += 1

        try:
            handler = self._registry.resolve(entry.command.kind)
            await handler(dict(entry.command.payload))
        except Exception as e:
            entry.state = OperationState.PENDING
            entry.last_error = str(e) or type(e).__name__
            if entry.id not in self._entries:
                report.discarded += 1
                logger.info("Discarded result of cancelled operation", operation_id=entry.id)
                return
            self._on_failure(entry, e, report)
            if entry.handoff_pending:
                await self._hand_off(entry, report)
            return

        entry.state = OperationState.PENDING
        if entry.id not in self._entries:
            report.discarded += 1
            logger.info("Discarded result of cancelled operation", operation_id=entry.id)
            return

        self._discard(entry.id)
        report.succeeded += 1
        logger.info(
            "Queued operation succeeded",
            operation_id=entry.id,
            kind=entry.command.kind,
            attempts=entry.attempts_used,
        )

    def _on_failure(self, entry: QueuedOperation, error: Exception, report: DrainReport) -> None:
        # Missing handlers and permanent errors end the entry whatever the policy says.
        rejected = isinstance(error, UnknownOperationError | PermanentOperationError)
        retryable = not rejected and entry.policy.should_retry(error)

        if entry.exhausted or not retryable:
            report.exhausted += 1
            logger.error(
                "Queued operation failed permanently",
                operation_id=entry.id,
                kind=entry.command.kind,
                attempts=entry.attempts_used,
                retryable=retryable,
                error=entry.last_error,
            )
            if entry.durable:
                entry.handoff_pending = True
            else:
                self._discard(entry.id)
            return

        delay = compute_backoff_delay(entry.policy, entry.attempts_used, self._rng)
        entry.next_eligible_at = self._clock.now() + timedelta(seconds=delay)
        report.deferred += 1
        logger.warning(
            "Queued operation failed, deferred",
            operation_id=entry.id,
            kind=entry.command.kind,
            attempt=entry.attempts_used,
            max_attempts=entry.max_attempts,
            delay_seconds=round(delay, 3),
            error=entry.last_error,
        )

    async def _hand_off(self, entry: QueuedOperation, report: DrainReport) -> None:
        if self._failure_store is None:
            raise RuntimeError("durable entry queued without a failure store")

        try:
            record_id = await self._failure_store.store_failure(
                entry.command.kind,
                entry.command.payload,
                entry.last_error,
                entry.priority,
            )
        except Exception as e:
            entry.next_eligible_at = self._clock.now() + timedelta(seconds=entry.policy.max_delay)
            report.handoff_failed += 1
            logger.error(
                "Failed to hand off exhausted operation, keeping it queued",
                operation_id=entry.id,
                exc_info=e,
            )
            return

        self._discard(entry.id)
        report.handed_off += 1
        logger.warning(
            "Handed off exhausted operation to failure store",
            operation_id=entry.id,
            record_id=record_id,
            kind=entry.command.kind,
        )

    def export_state(self) -> list[dict[str, Any]]:
        """JSON-ready snapshot of every entry in drain order."""
        return [self._entries[op_id].model_dump(mode="json") for op_id in self._order]

    def restore_state(self, items: Iterable[Mapping[str, Any]], *, replace: bool = True) -> int:
        """Rebuild entries from :meth:`export_state` output.

        Retry predicates are not serialised; each restored entry takes the
        predicate of its kind's registered policy (or the default policy) and
        keeps its persisted numbers.

        Raises
        ------
        StoreImportError
            If an item does not describe a valid entry, or describes a durable
            entry while the queue has no failure store.
        """
        restored: list[QueuedOperation] = []
        try:
            for item in items:
                entry = QueuedOperation.model_validate(item)
                if entry.durable and self._failure_store is None:
                    raise StoreImportError(f"Durable entry {entry.id!r} cannot be restored without a failure store")
                base_policy = self._registry.policy_for(entry.command.kind) or self._config.default_policy
                entry.policy = base_policy.with_numbers_from(entry.policy.snapshot())
                entry.state = OperationState.PENDING
                restored.append(entry)
        except ValidationError as e:
            logger.error("Invalid queue state", error_count=e.error_count())
            raise StoreImportError(f"Invalid queue entry: {e}") from e

        if replace:
            self._entries.clear()
        for entry in restored:
            if entry.command.kind not in self._registry:
                logger.warning(
                    "Restored operation has no registered handler",
                    operation_id=entry.id,
                    kind=entry.command.kind,
                )
            self._entries[entry.id] = entry
        self._resort()

        logger.info("Restored operation queue", restored=len(restored), total=len(self))
        return len(restored)

    async def acheckpoint(self) -> None:
        """Write the queue state under ``config.state_key``."""
        backend = self._require_backend()
        document = {"version": QUEUE_STATE_VERSION, "entries": self.export_state()}
        await backend.aset(self._config.state_key, json.dumps(document))
        logger.debug("Checkpointed operation queue", entries=len(self))

    async def arestore(self, *, replace: bool = True) -> int:
        """Reload the state written by :meth:`acheckpoint`. Returns restored count."""
        backend = self._require_backend()
        raw = await backend.aget(self._config.state_key)
        if not raw:
            return 0

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreImportError(f"Corrupted queue state: {e}") from e

        version = document.get("version") if isinstance(document, dict) else None
        if not isinstance(version, int) or isinstance(version, bool):
            raise StoreImportError(f"Invalid queue state version {version!r}")
        if version > QUEUE_STATE_VERSION:
            raise SchemaVersionError(version, QUEUE_STATE_VERSION)

        entries = document.get("entries")
        if not isinstance(entries, list):
            raise StoreImportError("Queue state has no entry list")
        return self.restore_state(entries, replace=replace)

    def _require_backend(self) -> KeyValueBackend:
        if self._backend is None:
            raise RuntimeError("OperationQueue has no key-value backend configured")
        return self._backend

    def _discard(self, operation_id: str) -> QueuedOperation | None:
        entry = self._entries.pop(operation_id, None)
        if entry is not None:
            self._order = [op_id for op_id in self._order if op_id != operation_id]
        return entry

    def _resort(self) -> None:
        self._order = sorted(self._entries, key=lambda op_id: self._entries[op_id].sort_key())
