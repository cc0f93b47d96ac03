"""Ready-made retry predicates for ``RetryPolicy.retry_predicate``."""

from __future__ import annotations

from collections.abc import Callable

from ..core.errors import PermanentOperationError, TransientOperationError

type RetryPredicate = Callable[[Exception], bool]

_NETWORK_HINTS = ("network", "timeout", "timed out", "connection reset", "connection refused")
_NETWORK_CODES = frozenset({"NETWORK_ERROR", "ECONNRESET", "ECONNABORTED"})
_GOOGLE_API_CODES = frozenset({"RATE_LIMIT_EXCEEDED", "BACKEND_ERROR", "INTERNAL_ERROR"})


def status_of(error: Exception) -> int | None:
    """Best-effort HTTP status extraction from transport errors."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None) or getattr(response, "status", None)
        if isinstance(value, int):
            return value
    return None


def code_of(error: Exception) -> str | None:
    """String error code set by HTTP clients (``error.code``), if any."""
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else None


def always(_error: Exception) -> bool:
    return True


def never(_error: Exception) -> bool:
    return False


def network_errors(error: Exception) -> bool:
    if isinstance(error, ConnectionError | TimeoutError):
        return True
    if code_of(error) in _NETWORK_CODES:
        return True
    message = str(error).lower()
    return any(hint in message for hint in _NETWORK_HINTS)


def server_errors(error: Exception) -> bool:
    status = status_of(error)
    return status is not None and 500 <= status < 600


def http_retryable(error: Exception) -> bool:
    """Rate limiting (429) and server errors."""
    return status_of(error) == 429 or server_errors(error)


def google_api_errors(error: Exception) -> bool:
    """HTTP retryable errors plus the retryable Google API error codes."""
    return http_retryable(error) or code_of(error) in _GOOGLE_API_CODES


def transient_only(error: Exception) -> bool:
    """Retry transient failures, never permanent ones.

    Errors from the resilience taxonomy are classified by type, anything else
    falls back to the network and HTTP heuristics.
    """
    if isinstance(error, PermanentOperationError):
        return False
    if isinstance(error, TransientOperationError):
        return True
    return network_errors(error) or http_retryable(error)


def any_of(*predicates: RetryPredicate) -> RetryPredicate:
    def combined(error: Exception) -> bool:
        return any(predicate(error) for predicate in predicates)

    return combined
