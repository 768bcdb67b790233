"""Tests for the resilient call executor."""

import asyncio
import time
import pytest

from cloudctl.base.exceptions import ClassifiedError, ErrorCategory
from cloudctl.base.retry import CancelToken, RetryPolicy, execute


def _flaky(failures: int, error: Exception | None = None, value="ok"):
    """Async callable failing *failures* times before returning *value*."""
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise error or RuntimeError("connection reset")
        return value

    return fn, calls


FAST = RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0)


class TestExecute:
    def test_success_first_attempt(self):
        fn, calls = _flaky(0)
        result = asyncio.run(execute("op", FAST, fn))
        assert result.succeeded
        assert result.value == "ok"
        assert result.attempts == 1
        assert result.error is None
        assert calls["n"] == 1

    def test_recovers_after_failures(self):
        fn, calls = _flaky(2)
        result = asyncio.run(execute("op", FAST, fn))
        assert result.succeeded
        assert result.attempts == 3
        assert calls["n"] == 3

    def test_exhausted(self):
        fn, calls = _flaky(10)
        result = asyncio.run(execute("create record www", FAST, fn))
        assert not result.succeeded
        assert result.attempts == 3
        assert calls["n"] == 3
        assert result.error.category is ErrorCategory.NETWORK
        assert result.error.operation == "create record www"
        assert not result.cancelled

    def test_disabled_single_attempt(self):
        fn, calls = _flaky(10)
        policy = RetryPolicy(enabled=False, max_attempts=5)
        result = asyncio.run(execute("op", policy, fn))
        assert not result.succeeded
        assert result.attempts == 1
        assert calls["n"] == 1

    def test_classified_error_kept(self):
        err = ClassifiedError(ErrorCategory.CONFLICT, "record already exists", http_status=409)
        fn, _ = _flaky(10, error=err)
        result = asyncio.run(execute("op", FAST, fn))
        assert result.error is err
        assert result.error.http_status == 409

    def test_retries_every_category_by_default(self):
        fn, calls = _flaky(10, error=RuntimeError("Authentication error"))
        result = asyncio.run(execute("op", FAST, fn))
        assert result.error.category is ErrorCategory.AUTH
        assert calls["n"] == 3

    def test_non_retryable_category_stops(self):
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay=0,
            max_delay=0,
            non_retryable=frozenset({ErrorCategory.AUTH, ErrorCategory.VALIDATION}),
        )
        fn, calls = _flaky(10, error=RuntimeError("Invalid API token"))
        result = asyncio.run(execute("op", policy, fn))
        assert not result.succeeded
        assert result.attempts == 1
        assert calls["n"] == 1

    def test_custom_classifier(self):
        policy = RetryPolicy(
            max_attempts=3,
            initial_delay=0,
            max_delay=0,
            non_retryable=frozenset({ErrorCategory.CONFLICT}),
        )
        fn, calls = _flaky(10)
        result = asyncio.run(
            execute("op", policy, fn, classifier=lambda e: ErrorCategory.CONFLICT)
        )
        assert result.error.category is ErrorCategory.CONFLICT
        assert calls["n"] == 1


class TestBackoff:
    def test_waits_between_attempts(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=0.1, max_delay=1.0, backoff_multiplier=2)
        fn, _ = _flaky(10)
        start = time.monotonic()
        result = asyncio.run(execute("op", policy, fn))
        elapsed = time.monotonic() - start
        assert result.attempts == 3
        # 0.1 + 0.2, no wait after the last attempt
        assert elapsed >= 0.29
        assert elapsed < 1.0

    def test_delay_capped(self):
        policy = RetryPolicy(max_attempts=4, initial_delay=0.05, max_delay=0.05, backoff_multiplier=10)
        fn, _ = _flaky(10)
        start = time.monotonic()
        asyncio.run(execute("op", policy, fn))
        elapsed = time.monotonic() - start
        assert elapsed >= 0.14
        assert elapsed < 1.0


class TestCancellation:
    def test_cancelled_before_first_attempt(self):
        async def scenario():
            token = CancelToken()
            token.cancel()
            fn, calls = _flaky(0)
            return await execute("op", FAST, fn, cancel=token), calls

        result, calls = asyncio.run(scenario())
        assert result.cancelled
        assert result.attempts == 0
        assert calls["n"] == 0
        assert result.error.message == "operation cancelled"

    def test_cancel_interrupts_backoff(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=10, max_delay=10)

        async def scenario():
            token = CancelToken()
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            fn, _ = _flaky(10)
            return await execute("op", policy, fn, cancel=token)

        start = time.monotonic()
        result = asyncio.run(scenario())
        elapsed = time.monotonic() - start
        assert result.cancelled
        assert not result.succeeded
        assert result.attempts == 1
        assert elapsed < 2.0

    def test_deadline_interrupts_backoff(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=10, max_delay=10)

        async def scenario():
            token = CancelToken(timeout=0.1)
            fn, _ = _flaky(10)
            return await execute("op", policy, fn, cancel=token)

        start = time.monotonic()
        result = asyncio.run(scenario())
        elapsed = time.monotonic() - start
        assert result.cancelled
        assert result.error.message == "deadline exceeded"
        assert result.error.category is ErrorCategory.UNKNOWN
        assert elapsed < 2.0

    def test_token_sleep_completes(self):
        async def scenario():
            return await CancelToken().sleep(0.01)

        assert asyncio.run(scenario()) is False

    def test_first_reason_kept(self):
        token = CancelToken()
        token.cancel("stopped by user")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "stopped by user"


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.enabled
        assert policy.max_attempts == 3
        assert policy.initial_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.backoff_multiplier == 2.0
        assert policy.is_retryable(ErrorCategory.AUTH)

    def test_frozen(self):
        with pytest.raises(ValueError):
            RetryPolicy().max_attempts = 7

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
