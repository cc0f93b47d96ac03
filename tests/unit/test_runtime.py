from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from helpers import FailingHandler, RecordingSleep, ScriptedHandler, SteppedSleep, settle

from resilient.config import ResilienceSettings
from resilient.core.clock import ManualClock
from resilient.core.enums import HealthCheckStatus
from resilient.core.errors import CircuitOpenError, UnknownOperationError
from resilient.queue.config import QueueConfig
from resilient.queue.domain import OperationCommand
from resilient.queue.registry import HandlerRegistry
from resilient.resilience.config import CircuitBreakerConfig, RetryPolicy
from resilient.runtime import ResilienceRuntime
from resilient.store.backends import InMemoryBackend, RedisBackend
from resilient.store.config import StoreConfig


@pytest.fixture
def settings(no_jitter_policy: RetryPolicy) -> ResilienceSettings:
    return ResilienceSettings(
        backend="memory",
        queue=QueueConfig(drain_interval=2.0, default_policy=no_jitter_policy),
        store=StoreConfig(max_records=10),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=3, reset_timeout=30.0),
    )


@pytest.fixture
def runtime(
    settings: ResilienceSettings,
    registry: HandlerRegistry,
    clock: ManualClock,
    recording_sleep: RecordingSleep,
) -> ResilienceRuntime:
    return ResilienceRuntime.from_settings(settings, registry, clock=clock, sleep=recording_sleep)


class TestRuntimeWiring:
    def test_memory_backend_is_shared(self, runtime: ResilienceRuntime) -> None:
        assert isinstance(runtime.backend, InMemoryBackend)
        assert runtime.store.config.max_records == 10
        assert runtime.queue.config.drain_interval == 2.0
        assert runtime.worker.task.interval == 2.0

    @pytest.mark.asyncio
    async def test_memory_runtime_is_healthy(self, runtime: ResilienceRuntime) -> None:
        assert await runtime.ahealth_check() is HealthCheckStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_redis_runtime_manages_client_lifecycle(
        self, registry: HandlerRegistry, stepped_sleep: SteppedSleep
    ) -> None:
        redis_client = MagicMock()
        redis_client.ainitialize = AsyncMock()
        redis_client.aclose = AsyncMock()
        redis_client.ahealth_check = AsyncMock(return_value=HealthCheckStatus.UNHEALTHY)

        runtime = ResilienceRuntime.from_settings(
            ResilienceSettings(backend="redis"), registry, redis_client=redis_client, sleep=stepped_sleep
        )

        async with runtime:
            await settle()
            assert runtime.worker.running is True
            assert await runtime.ahealth_check() is HealthCheckStatus.UNHEALTHY

        assert isinstance(runtime.backend, RedisBackend)
        redis_client.ainitialize.assert_awaited_once()
        redis_client.aclose.assert_awaited_once()
        assert runtime.worker.running is False


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success_stores_nothing(self, runtime: ResilienceRuntime, registry: HandlerRegistry) -> None:
        registry.register("create", ScriptedHandler())

        outcome = await runtime.submit(OperationCommand(kind="create", payload={"name": "Ada"}))

        assert outcome.succeeded is True
        assert outcome.value == "ok"
        assert await runtime.store.list_all() == []

    @pytest.mark.asyncio
    async def test_failure_is_stored_for_replay(
        self, runtime: ResilienceRuntime, registry: HandlerRegistry, recording_sleep: RecordingSleep
    ) -> None:
        """Verify an exhausted submission lands in the store exactly once.

        Arrange
        -------
        - Handler that always fails, default policy of 3 attempts without jitter

        Act
        ---
        - Submit the command

        Assert
        ------
        - 3 attempts with 1s and 2s delays, one stored record, nothing queued
        """
        handler = FailingHandler(ConnectionError("offline"))
        registry.register("update", handler)

        outcome = await runtime.submit(OperationCommand(kind="update", payload={"id": 1}), priority=3)

        records = await runtime.store.list_all()
        assert outcome.succeeded is False
        assert outcome.attempts_used == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert len(records) == 1
        assert records[0].priority == 3
        assert records[0].last_error == "offline"
        assert len(runtime.queue) == 0

    @pytest.mark.asyncio
    async def test_deferred_failure_is_queued_not_stored(
        self, runtime: ResilienceRuntime, registry: HandlerRegistry
    ) -> None:
        registry.register("update", FailingHandler(ConnectionError("offline")))

        await runtime.submit(
            OperationCommand(kind="update"),
            RetryPolicy(max_attempts=1),
            defer=True,
            metadata={"origin": "form"},
        )

        entries = runtime.queue.entries()
        assert await runtime.store.list_all() == []
        assert len(entries) == 1
        assert entries[0].durable is True
        assert entries[0].metadata == {"origin": "form"}

    @pytest.mark.asyncio
    async def test_unknown_kind_is_rejected(self, runtime: ResilienceRuntime) -> None:
        with pytest.raises(UnknownOperationError):
            await runtime.submit(OperationCommand(kind="missing"))


class TestReplay:
    @pytest.mark.asyncio
    async def test_replay_recovers_stored_failures(self, runtime: ResilienceRuntime, registry: HandlerRegistry) -> None:
        handler = ScriptedHandler(ConnectionError("a"), ConnectionError("b"), ConnectionError("c"))
        registry.register("update", handler)
        await runtime.submit(OperationCommand(kind="update", payload={"id": 1}))

        report = await runtime.replay()

        assert report.succeeded == 1
        assert await runtime.store.list_all() == []
        assert len(handler.calls) == 4

class TestCircuitBreakers:
    def test_breakers_are_created_once_per_name(self, runtime: ResilienceRuntime) -> None:
        breaker = runtime.breaker("sheets.append")

        assert runtime.breaker("sheets.append") is breaker
        assert runtime.breaker("sheets.delete") is not breaker
        assert breaker.config.failure_threshold == 3

    @pytest.mark.asyncio
    async def test_breaker_uses_runtime_clock(self, runtime: ResilienceRuntime, clock: ManualClock) -> None:
        breaker = runtime.breaker("sheets.append", RetryPolicy(max_attempts=1))
        handler = FailingHandler(ConnectionError("offline"))
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(lambda: handler({}))

        with pytest.raises(CircuitOpenError):
            await breaker.call(lambda: handler({}))

        clock.advance(30)
        with pytest.raises(ConnectionError):
            await breaker.call(lambda: handler({}))
        assert len(handler.calls) == 4
