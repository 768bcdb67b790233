"""
Resilient call execution with configurable exponential backoff.

:func:`execute` runs one unit of work under a :class:`RetryPolicy`: bounded
attempts, capped exponential backoff and cooperative cancellation through a
:class:`CancelToken`. Failures never escape as exceptions; they come back
classified inside a :class:`CallResult`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cloudctl.base.exceptions import (
    ClassifiedError,
    ErrorCategory,
    classify_error,
    wrap_error,
)

logger = logging.getLogger("cloudctl")

T = TypeVar("T")

CANCELLED = "operation cancelled"
DEADLINE_EXCEEDED = "deadline exceeded"


class RetryPolicy(BaseModel):
    """Retry settings shared read-only by every call in a run.

    Delays are in seconds. ``non_retryable`` lists categories that fail
    immediately instead of consuming the remaining attempts; it is empty by
    default, so every failure is retried.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    non_retryable: frozenset[ErrorCategory] = frozenset()

    @model_validator(mode="after")
    def check_delays(self) -> RetryPolicy:
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        return self

    def is_retryable(self, category: ErrorCategory) -> bool:
        return category not in self.non_retryable


class CancelToken:
    """Cooperative cancellation signal with an optional deadline.

    One token is shared by every call of a run. Calling :meth:`cancel` or
    passing the deadline makes :attr:`cancelled` true and wakes any
    :meth:`sleep` in progress.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = asyncio.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._reason: str | None = None

    def cancel(self, reason: str = CANCELLED) -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = self._reason or DEADLINE_EXCEEDED
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason or CANCELLED

    async def sleep(self, delay: float) -> bool:
        """Wait *delay* seconds unless cancelled first.

        Returns:
            ``True`` if the token was cancelled before the delay elapsed.
        """
        if self.cancelled:
            return True
        timeout = delay
        hits_deadline = False
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= timeout:
                timeout, hits_deadline = max(remaining, 0.0), True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            if hits_deadline:
                self._reason = self._reason or DEADLINE_EXCEEDED
                return True
            return False


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """Outcome of one :func:`execute` invocation."""

    succeeded: bool
    value: T | None = None
    error: ClassifiedError | None = None
    attempts: int = 0
    cancelled: bool = False


def _cancelled(operation: str, cancel: CancelToken, attempts: int) -> CallResult[Any]:
    return CallResult(
        succeeded=False,
        error=ClassifiedError(ErrorCategory.UNKNOWN, cancel.reason, operation=operation),
        attempts=attempts,
        cancelled=True,
    )


async def execute(
    operation: str,
    policy: RetryPolicy,
    fn: Callable[[], Awaitable[T]],
    *,
    cancel: CancelToken | None = None,
    classifier: Callable[[BaseException], ErrorCategory] = classify_error,
    log: logging.Logger | None = None,
) -> CallResult[T]:
    """Run *fn* under *policy* and return its classified outcome.

    Args:
        operation: Name used in log records and error messages.
        policy: Retry settings.
        fn: Zero-argument callable returning an awaitable; called once per
            attempt.
        cancel: Optional cancellation token, checked before each attempt and
            raced against every backoff wait.
        classifier: Maps an exception to an :class:`ErrorCategory`.
        log: Logger for attempt and retry records; defaults to the
            ``cloudctl`` logger.

    Returns:
        A :class:`CallResult` with the value or the classified error and the
        number of attempts made.
    """
    log = log or logger
    extra: dict[str, Any] = {"operation": operation}

    if not policy.enabled:
        if cancel is not None and cancel.cancelled:
            return _cancelled(operation, cancel, 0)
        try:
            value = await fn()
        except Exception as exc:
            return CallResult(succeeded=False, error=wrap_error(exc, operation, classifier), attempts=1)
        return CallResult(succeeded=True, value=value, attempts=1)

    delay = policy.initial_delay
    error: ClassifiedError | None = None
    attempt = 0
    for attempt in range(1, policy.max_attempts + 1):
        if cancel is not None and cancel.cancelled:
            return _cancelled(operation, cancel, attempt - 1)

        log.debug(
            "Attempt %d/%d for %s",
            attempt,
            policy.max_attempts,
            operation,
            extra={**extra, "attempt": attempt},
        )
        try:
            value = await fn()
        except Exception as exc:
            error = wrap_error(exc, operation, classifier)
        else:
            if attempt > 1:
                log.info(
                    "%s succeeded after %d attempts",
                    operation,
                    attempt,
                    extra={**extra, "attempt": attempt},
                )
            return CallResult(succeeded=True, value=value, attempts=attempt)

        if not policy.is_retryable(error.category):
            log.debug(
                "%s failed with non-retryable %s error: %s",
                operation,
                error.category.value,
                error.message,
                extra={**extra, "attempt": attempt},
            )
            return CallResult(succeeded=False, error=error, attempts=attempt)

        if attempt == policy.max_attempts:
            break

        log.warning(
            "Attempt %d/%d for %s failed (%s), retrying in %.1fs",
            attempt,
            policy.max_attempts,
            operation,
            error.message,
            delay,
            extra={**extra, "attempt": attempt},
        )
        if cancel is not None:
            if await cancel.sleep(delay):
                return _cancelled(operation, cancel, attempt)
        else:
            await asyncio.sleep(delay)
        delay = min(delay * policy.backoff_multiplier, policy.max_delay)

    log.error(
        "All %d attempts failed for %s: %s",
        policy.max_attempts,
        operation,
        error.message if error else "",
        extra={**extra, "attempt": attempt},
    )
    return CallResult(succeeded=False, error=error, attempts=attempt)
