from __future__ import annotations

import asyncio
from types import TracebackType
from typing import TYPE_CHECKING, Self

from ..core.scheduler import PeriodicTask
from ..core.types import SleepFunc
from ..logger import get_logger
from .domain import DrainReport

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .service import OperationQueue

logger: BoundLogger = get_logger(__name__)


class QueueWorker:
    """Drives an :class:`OperationQueue` with a :class:`PeriodicTask`.

    When the queue config enables ``persist_state`` the worker restores the
    checkpoint on start, checkpoints after every completed pass and once
    more on stop.
    """

    def __init__(self, queue: OperationQueue, *, sleep: SleepFunc = asyncio.sleep) -> None:
        self._queue = queue
        self._persist = queue.config.persist_state
        self._task = PeriodicTask(
            self.arun_pass,
            queue.config.drain_interval,
            name="operation-queue-drain",
            sleep=sleep,
        )

    @property
    def running(self) -> bool:
        return self._task.running

    @property
    def task(self) -> PeriodicTask:
        return self._task

    async def arun_pass(self) -> DrainReport:
        report = await self._queue.drain()
        if self._persist and not report.skipped:
            await self._queue.acheckpoint()
        return report

    async def astart(self) -> None:
        if self.running:
            return
        if self._persist:
            restored = await self._queue.arestore(replace=False)
            logger.info("Queue worker restored checkpoint", restored=restored)
        self._task.start()

    async def astop(self) -> None:
        await self._task.stop()
        if self._persist:
            await self._queue.acheckpoint()

    async def __aenter__(self) -> Self:
        await self.astart()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.astop()
