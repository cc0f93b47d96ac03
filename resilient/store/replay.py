from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING

from ..core.types import SleepFunc
from ..logger import get_logger
from ..resilience.config import RetryPolicy
from ..resilience.retry import execute_with_retry
from .domain import ReplayReport

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from ..queue.registry import HandlerRegistry
    from .service import FailureStore

logger: BoundLogger = get_logger(__name__)

SINGLE_ATTEMPT = RetryPolicy(max_attempts=1)


async def replay_failures(
    store: FailureStore,
    registry: HandlerRegistry,
    *,
    policy: RetryPolicy | None = None,
    limit: int | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> ReplayReport:
    """Recovery pass: replay stored failures once connectivity is back.

    Each replayable record is run through its registered handler (one
    attempt unless ``policy`` allows more). Success deletes the record,
    failure increments its retry count.

    Parameters
    ----------
    store : FailureStore
        Store to recover from.
    registry : HandlerRegistry
        Handlers keyed by operation kind.
    policy : RetryPolicy | None
        Retry policy per record. Defaults to a single attempt.
    limit : int | None
        Maximum records to process in this pass. None means all.
    sleep : SleepFunc
        Suspension primitive used between retries.

    Returns
    -------
    ReplayReport
        Counts of processed, succeeded and failed records.
    """
    records = await store.list_replayable()
    if limit is not None:
        records = records[:limit]

    report = ReplayReport()
    logger.info("Replaying stored failures", count=len(records))

    for record in records:
        report.processed += 1

        if record.operation_kind not in registry:
            message = f"no handler for kind {record.operation_kind!r}"
            await store.record_retry_failure(record.id, message)
            report.failed += 1
            report.errors.append(f"{record.id}: {message}")
            logger.error("Cannot replay record", record_id=record.id, kind=record.operation_kind)
            continue

        handler = registry.resolve(record.operation_kind)
        outcome = await execute_with_retry(
            partial(handler, dict(record.payload_snapshot)),
            policy or SINGLE_ATTEMPT,
            sleep=sleep,
            operation_name=f"replay:{record.operation_kind}",
        )

        if outcome.succeeded:
            await store.mark_replayed(record.id)
            report.succeeded += 1
            continue

        await store.record_retry_failure(record.id, outcome.error)
        report.failed += 1
        report.errors.append(f"{record.id}: {outcome.error}")

    logger.info(
        "Replay pass complete",
        processed=report.processed,
        succeeded=report.succeeded,
        failed=report.failed,
    )
    return report
