from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple

from ..core.errors import DuplicateHandlerError, UnknownOperationError
from ..resilience.config import RetryPolicy

type OperationHandler = Callable[[dict[str, Any]], Awaitable[object]]


class _Registration(NamedTuple):
    handler: OperationHandler
    policy: RetryPolicy | None


class HandlerRegistry:
    """Maps operation kinds to the coroutine that performs one attempt.

    Examples
    --------
    >>> registry = HandlerRegistry()
    >>> @registry.handler("update", policy=RetryPolicy(max_attempts=5))
    ... async def sync_user(payload: dict[str, Any]) -> None:
    ...     await sheets.update(payload)
    """

    def __init__(self) -> None:
        self._registrations: dict[str, _Registration] = {}

    def register(self, kind: str, handler: OperationHandler, policy: RetryPolicy | None = None) -> None:
        key = str(kind)
        if not key:
            raise ValueError("kind must be a non-empty string")
        if key in self._registrations:
            raise DuplicateHandlerError(key)
        self._registrations[key] = _Registration(handler, policy)

    def handler(
        self,
        kind: str,
        policy: RetryPolicy | None = None,
    ) -> Callable[[OperationHandler], OperationHandler]:
        def decorator(func: OperationHandler) -> OperationHandler:
            self.register(kind, func, policy)
            return func

        return decorator

    def resolve(self, kind: str) -> OperationHandler:
        try:
            return self._registrations[str(kind)].handler
        except KeyError:
            raise UnknownOperationError(str(kind)) from None

    def policy_for(self, kind: str) -> RetryPolicy | None:
        registration = self._registrations.get(str(kind))
        return registration.policy if registration else None

    def kinds(self) -> list[str]:
        return sorted(self._registrations)

    def __contains__(self, kind: object) -> bool:
        return str(kind) in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)
