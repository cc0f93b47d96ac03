"""
Resilient Operations Walkthrough
================================

This example drives the whole subsystem against a simulated, flaky
spreadsheet API:
1. Registering handlers per operation kind
2. Immediate execution with backoff (``submit``)
3. Deferring a durable operation to the queue
4. Draining the queue on a timer
5. Replaying stored failures once the API is back
6. Failing fast with a circuit breaker

Backend
-------
Runs in memory by default. To keep state in Redis instead:

    docker run -d --name redis -p 6379:6379 redis:7-alpine
    RESILIENT_BACKEND=redis uv run python playground/resilience_demo.py

Inspect what was persisted:

    redis-cli GET resilient:failed_operations
    redis-cli GET resilient:operation_queue

Running This Example
--------------------
    uv run python playground/resilience_demo.py
"""

from __future__ import annotations

import asyncio
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from resilient import (
    CircuitBreakerConfig,
    CircuitOpenError,
    HandlerRegistry,
    OperationCommand,
    QueueConfig,
    ResilienceRuntime,
    ResilienceSettings,
    RetryPolicy,
    configure_logging,
)
from resilient.core.errors import PermanentOperationError, TransientOperationError
from resilient.logger import LoggingConfig
from resilient.resilience.predicates import transient_only

console = Console()


class FlakySheet:
    """In-process stand-in for a remote spreadsheet API."""

    def __init__(self) -> None:
        self.online = False
        self.rows: dict[str, dict[str, Any]] = {}

    async def upsert(self, payload: dict[str, Any]) -> None:
        if "email" not in payload:
            raise PermanentOperationError("email is required", status=400)
        if not self.online:
            raise TransientOperationError("503 Service Unavailable", status=503)
        self.rows[payload["email"]] = payload

    async def delete(self, payload: dict[str, Any]) -> None:
        if not self.online:
            raise TransientOperationError("Network timeout")
        self.rows.pop(payload["email"], None)


def build_registry(sheet: FlakySheet) -> HandlerRegistry:
    registry = HandlerRegistry()
    policy = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, retry_predicate=transient_only)
    registry.register("create", sheet.upsert, policy)
    registry.register("update", sheet.upsert, policy)
    registry.register("delete", sheet.delete, policy)
    return registry


def print_store(records: list[Any]) -> None:
    table = Table(title="Failure store")
    table.add_column("id")
    table.add_column("kind")
    table.add_column("priority", justify="right")
    table.add_column("retries", justify="right")
    table.add_column("last error")
    for record in records:
        table.add_row(
            record.id[:12],
            record.operation_kind,
            str(record.priority),
            str(record.retry_count),
            record.last_error or "",
        )
    console.print(table)


async def main() -> None:
    configure_logging(LoggingConfig(level="WARNING"))
    sheet = FlakySheet()
    settings = ResilienceSettings(
        queue=QueueConfig(drain_interval=0.2),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=2, reset_timeout=5.0),
    )

    console.print(Panel("[bold]Resilient operations demo[/bold]", expand=False))

    async with ResilienceRuntime.from_settings(settings, build_registry(sheet)) as runtime:
        console.print("\n[bold]1. Submitting while the API is down...[/bold]")
        outcome = await runtime.submit(
            OperationCommand(kind="create", payload={"email": "ada@example.com", "name": "Ada"}),
            priority=5,
        )
        console.print(f"  [yellow]→[/yellow] succeeded={outcome.succeeded} attempts={outcome.attempts_used}")

        invalid = await runtime.submit(OperationCommand(kind="update", payload={"name": "no email"}))
        console.print(f"  [red]✗[/red] permanent error after {invalid.attempts_used} attempt(s): {invalid.error}")

        console.print("\n[bold]2. Deferring a delete to the queue...[/bold]")
        await runtime.submit(
            OperationCommand(kind="delete", payload={"email": "grace@example.com"}),
            RetryPolicy(max_attempts=1),
            defer=True,
        )
        console.print(f"  Queue status: {runtime.queue.status()}")

        print_store(await runtime.store.list_all())

        console.print("\n[bold]3. API back online, letting the worker drain...[/bold]")
        sheet.online = True
        await asyncio.sleep(0.5)
        console.print(f"  Queue status: {runtime.queue.status()}")

        console.print("\n[bold]4. Replaying stored failures...[/bold]")
        report = await runtime.replay()
        console.print(f"  [green]✓[/green] {report.succeeded}/{report.processed} replayed")

        print_store(await runtime.store.list_all())
        console.print(f"\n  Sheet rows: {sorted(sheet.rows)}")

        console.print("\n[bold]5. Guarding calls with a circuit breaker...[/bold]")
        sheet.online = False
        breaker = runtime.breaker("sheet.delete", RetryPolicy(max_attempts=1))
        for _ in range(3):
            try:
                await breaker.call(lambda: sheet.delete({"email": "ada@example.com"}))
            except CircuitOpenError as e:
                console.print(f"  [red]✗[/red] rejected, circuit open for another {e.retry_in:.1f}s")
            except TransientOperationError as e:
                console.print(f"  [yellow]→[/yellow] failed ({e}), breaker state={breaker.state}")

    console.print(Panel("[bold green]Demo complete[/bold green]", expand=False))


if __name__ == "__main__":
    asyncio.run(main())
