from __future__ import annotations


class ResilienceError(Exception):
    """Base class for every error raised by the resilience subsystem."""


class TransientOperationError(ResilienceError):
    """Retryable failure of a single attempt (network, 5xx, rate limiting).

    Parameters
    ----------
    message : str
        Human readable description.
    status : int | None
        Optional HTTP-like status code reported by the transport.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PermanentOperationError(ResilienceError):
    """Non-retryable failure (validation, 4xx).

    The operation queue and ``transient_only`` never retry it. A bare
    ``RetryPolicy()`` handed to the executor still does.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RetriesExhaustedError(ResilienceError):
    """Raised when a caller unwraps a failed retry outcome."""

    def __init__(self, attempts_used: int, last_error: BaseException | None) -> None:
        super().__init__(f"Operation failed after {attempts_used} attempt(s): {last_error}")
        self.attempts_used = attempts_used
        self.last_error = last_error


class CircuitOpenError(ResilienceError):
    """A call was rejected without running because its circuit is open."""

    def __init__(self, name: str, retry_in: float) -> None:
        super().__init__(f"Circuit breaker {name!r} is open, retry in {retry_in:.1f}s")
        self.name = name
        self.retry_in = retry_in


class StorageFullError(ResilienceError):
    """The durable key-value backend rejected a write for capacity reasons."""


class StoreImportError(ResilienceError):
    """Persisted or imported failure records could not be parsed."""


class SchemaVersionError(StoreImportError):
    """Persisted data was written by a newer, unknown schema version."""

    def __init__(self, found: object, supported: int) -> None:
        super().__init__(f"Unsupported schema version {found!r} (supported <= {supported})")
        self.found = found
        self.supported = supported


class UnknownOperationError(ResilienceError):
    """No handler is registered for an operation kind."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"No handler registered for operation kind {kind!r}")
        self.kind = kind


class DuplicateHandlerError(ResilienceError):
    """A handler is already registered for an operation kind."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Handler already registered for operation kind {kind!r}")
        self.kind = kind
