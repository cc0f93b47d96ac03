from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from resilient.core.errors import PermanentOperationError
from resilient.resilience.config import RetryPolicy, always_retry


class TestRetryPolicyDefaults:
    def test_default_values(self) -> None:
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.exponential_base == 2.0
        assert policy.jitter is True
        assert policy.retry_predicate is always_retry
        assert policy.retry_on_exceptions is None
        assert policy.never_retry_on is None


class TestRetryPolicyValidation:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_attempts", 0),
            ("base_delay", -1.0),
            ("max_delay", -0.5),
            ("exponential_base", 1.0),
        ],
    )
    def test_rejects_out_of_range_values(self, field: str, value: float) -> None:
        with pytest.raises(ValidationError):
            RetryPolicy(**{field: value})

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            RetryPolicy(wait_min=1.0)  # type: ignore[call-arg]

    def test_is_immutable(self) -> None:
        policy = RetryPolicy()
        with pytest.raises(ValidationError):
            policy.max_attempts = 10  # type: ignore[misc]


class TestShouldRetry:
    def test_consults_predicate(self) -> None:
        policy = RetryPolicy(retry_predicate=lambda e: "retry" in str(e))

        assert policy.should_retry(RuntimeError("please retry")) is True
        assert policy.should_retry(RuntimeError("give up")) is False

    def test_never_retries_cancellation(self) -> None:
        assert RetryPolicy().should_retry(asyncio.CancelledError()) is False

    def test_never_retry_on_wins_over_retry_on(self) -> None:
        policy = RetryPolicy(retry_on_exceptions=(Exception,), never_retry_on=(PermanentOperationError,))

        assert policy.should_retry(ConnectionError()) is True
        assert policy.should_retry(PermanentOperationError("400", status=400)) is False

    def test_retry_on_limits_types(self) -> None:
        policy = RetryPolicy(retry_on_exceptions=(ConnectionError,))

        assert policy.should_retry(ConnectionResetError()) is True
        assert policy.should_retry(ValueError()) is False


class TestPolicySnapshot:
    def test_snapshot_contains_only_numbers(self) -> None:
        snapshot = RetryPolicy(max_attempts=4, retry_on_exceptions=(KeyError,)).snapshot()

        assert snapshot == {
            "max_attempts": 4,
            "base_delay": 1.0,
            "max_delay": 30.0,
            "exponential_base": 2.0,
            "jitter": True,
        }

    def test_with_numbers_from_keeps_filters(self) -> None:
        """Numbers come from the snapshot, predicate and filters from the receiver."""

        def predicate(_error: Exception) -> bool:
            return False

        base = RetryPolicy(retry_predicate=predicate, never_retry_on=(KeyError,))
        restored = base.with_numbers_from({"max_attempts": 7, "base_delay": 0.25, "jitter": False})

        assert restored.max_attempts == 7
        assert restored.base_delay == 0.25
        assert restored.jitter is False
        assert restored.retry_predicate is predicate
        assert restored.never_retry_on == (KeyError,)
