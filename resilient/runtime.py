from __future__ import annotations

import asyncio
from functools import partial
from types import TracebackType
from typing import TYPE_CHECKING, Any, Self

from .config import ResilienceSettings
from .core.clock import Clock
from .core.enums import HealthCheckStatus
from .core.types import SleepFunc
from .infrastructure.redis.standalone import RedisStandaloneClient
from .logger import get_logger
from .queue.domain import OperationCommand
from .queue.registry import HandlerRegistry
from .queue.service import OperationQueue
from .queue.worker import QueueWorker
from .resilience.circuit_breaker import CircuitBreaker
from .resilience.config import CircuitBreakerConfig, RetryPolicy
from .resilience.retry import RetryOutcome, execute_with_retry
from .store.backends import InMemoryBackend, KeyValueBackend, RedisBackend
from .store.domain import ReplayReport
from .store.replay import replay_failures
from .store.service import FailureStore

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from .infrastructure.redis.base import BaseRedisClient

logger: BoundLogger = get_logger(__name__)


class ResilienceRuntime:
    """Explicitly wired executor, queue, worker and failure store.

    Nothing here is a module-level singleton: build as many runtimes as
    needed, each with its own registry, backend and configuration.

    Usage Pattern
    -------------
    ```python
    registry = HandlerRegistry()
    registry.register("update", sync_user)

    async with ResilienceRuntime.from_settings(ResilienceSettings(), registry) as runtime:
        outcome = await runtime.submit(OperationCommand(kind="update", payload=user))
        await runtime.replay()
    ```
    """

    def __init__(
        self,
        *,
        registry: HandlerRegistry,
        backend: KeyValueBackend,
        store: FailureStore,
        queue: OperationQueue,
        worker: QueueWorker,
        redis_client: BaseRedisClient | None = None,
        clock: Clock | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.store = store
        self.queue = queue
        self.worker = worker
        self._redis_client = redis_client
        self._clock = clock
        self._breaker_config = breaker_config or CircuitBreakerConfig()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings | None = None,
        registry: HandlerRegistry | None = None,
        *,
        redis_client: BaseRedisClient | None = None,
        clock: Clock | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> ResilienceRuntime:
        effective_settings = settings or ResilienceSettings()
        effective_registry = registry if registry is not None else HandlerRegistry()

        backend: KeyValueBackend
        if effective_settings.backend == "redis":
            redis_client = redis_client if redis_client is not None else RedisStandaloneClient(effective_settings.redis)
            backend = RedisBackend(redis_client)
        else:
            redis_client = None
            backend = InMemoryBackend()

        store = FailureStore(backend, effective_settings.store, clock=clock)
        queue = OperationQueue(
            effective_registry,
            effective_settings.queue,
            clock=clock,
            failure_store=store,
            backend=backend,
        )
        worker = QueueWorker(queue, sleep=sleep)

        logger.info(
            "Resilience runtime configured",
            backend=effective_settings.backend,
            drain_interval=effective_settings.queue.drain_interval,
            max_records=effective_settings.store.max_records,
        )
        return cls(
            registry=effective_registry,
            backend=backend,
            store=store,
            queue=queue,
            worker=worker,
            redis_client=redis_client,
            clock=clock,
            breaker_config=effective_settings.circuit_breaker,
            sleep=sleep,
        )

    async def astart(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.ainitialize()
        await self.worker.astart()

    async def astop(self) -> None:
        await self.worker.astop()
        if self._redis_client is not None:
            await self._redis_client.aclose()

    async def ahealth_check(self) -> HealthCheckStatus:
        if self._redis_client is None:
            return HealthCheckStatus.HEALTHY
        return await self._redis_client.ahealth_check()

    async def submit(
        self,
        command: OperationCommand,
        policy: RetryPolicy | None = None,
        *,
        priority: int = 0,
        defer: bool = False,
        metadata: dict[str, str] | None = None,
    ) -> RetryOutcome[Any]:
        """Try a durable operation now; never lose it if it fails.

        The command runs through the backoff executor. On failure it is
        either stored for replay (default) or, with ``defer=True``, queued
        as a durable entry that reaches the store only if the queue also
        exhausts it. Exactly one of the two paths is taken, so a failure is
        never recorded twice.
        """
        handler = self.registry.resolve(command.kind)
        effective_policy = policy or self.registry.policy_for(command.kind) or self.queue.config.default_policy
        outcome: RetryOutcome[Any] = await execute_with_retry(
            partial(handler, dict(command.payload)),
            effective_policy,
            sleep=self._sleep,
            operation_name=command.kind,
        )
        if outcome.succeeded:
            return outcome

        if defer:
            self.queue.enqueue(command, effective_policy, priority, metadata, durable=True)
        else:
            await self.store.store_failure(command.kind, command.payload, outcome.error, priority)
        return outcome

    def breaker(self, name: str, policy: RetryPolicy | None = None) -> CircuitBreaker:
        """Circuit breaker for operation ``name``, created on first use.

        ``policy`` only applies when the breaker is created.
        """
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                name,
                self._breaker_config,
                policy=policy,
                clock=self._clock,
                sleep=self._sleep,
            )
        return self._breakers[name]

    async def replay(self, *, policy: RetryPolicy | None = None, limit: int | None = None) -> ReplayReport:
        return await replay_failures(self.store, self.registry, policy=policy, limit=limit, sleep=self._sleep)

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
