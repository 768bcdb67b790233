"""
cloudctl exception hierarchy and error classification.

Provider SDKs surface failures as free-form messages, so every failure that
crosses a provider boundary is wrapped in a :class:`ClassifiedError` whose
:class:`ErrorCategory` is either known (an HTTP status was available) or
inferred from the message text by :func:`classify_message`.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable


# ── Base ──────────────────────────────────────────────────────────────
class CloudctlError(Exception):
    """Root exception for all cloudctl errors."""


class ConfigError(CloudctlError):
    """Configuration file or profile problem."""


class PlanError(CloudctlError):
    """Batch plan file could not be loaded or failed validation."""


# ── Classification ────────────────────────────────────────────────────
class ErrorCategory(str, Enum):
    """Coarse failure category used for retry decisions and exit codes."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    VALIDATION = "validation"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


# Evaluated in order; the first category with a matching term wins.
_VOCABULARY: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.AUTH, ("authentication", "unauthorized", "invalid token", "invalid api token")),
    (ErrorCategory.NOT_FOUND, ("not found", "does not exist")),
    (ErrorCategory.CONFLICT, ("already exists", "conflict", "duplicate")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests")),
    (ErrorCategory.NETWORK, ("network", "connection", "timeout", "dial")),
    (ErrorCategory.VALIDATION, ("invalid", "validation", "bad request")),
    (ErrorCategory.PERMISSION, ("forbidden", "permission denied", "access denied")),
)


class ClassifiedError(CloudctlError):
    """A provider failure tagged with an :class:`ErrorCategory`.

    Attributes:
        category: Inferred or known failure category.
        operation: Human-readable name of the operation that failed.
        message: Failure message (usually the provider's own text).
        cause: Underlying exception, if any.
        http_status: HTTP status code when the provider exposed one.
    """

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        *,
        operation: str = "",
        cause: BaseException | None = None,
        http_status: int | None = None,
    ) -> None:
        self.category = category
        self.operation = operation
        self.message = message
        self.cause = cause
        self.http_status = http_status
        super().__init__(message)

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(category={self.category.value!r}, "
            f"operation={self.operation!r}, message={self.message!r})"
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "operation": self.operation,
            "message": self.message,
        }


def classify_message(message: str) -> ErrorCategory:
    """Infer an :class:`ErrorCategory` from free-form error text.

    Matching is a case-insensitive substring search over a fixed vocabulary;
    the result depends only on *message*.
    """
    lowered = message.lower()
    for category, terms in _VOCABULARY:
        if any(term in lowered for term in terms):
            return category
    return ErrorCategory.UNKNOWN


def classify_error(exc: BaseException) -> ErrorCategory:
    """Return the category of *exc*, keeping any category it already carries."""
    if isinstance(exc, ClassifiedError):
        return exc.category
    return classify_message(str(exc))


def category_for_status(status: int) -> ErrorCategory:
    """Map an HTTP status code to an :class:`ErrorCategory`."""
    mapping = {
        400: ErrorCategory.VALIDATION,
        401: ErrorCategory.AUTH,
        403: ErrorCategory.PERMISSION,
        404: ErrorCategory.NOT_FOUND,
        409: ErrorCategory.CONFLICT,
        429: ErrorCategory.RATE_LIMIT,
    }
    if status in mapping:
        return mapping[status]
    if status >= 500:
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


def wrap_error(
    exc: BaseException,
    operation: str,
    classifier: Callable[[BaseException], ErrorCategory] = classify_error,
) -> ClassifiedError:
    """Wrap *exc* as a :class:`ClassifiedError` for *operation*.

    An existing :class:`ClassifiedError` is returned as-is, gaining
    *operation* only if it had none. Anything else is categorised by
    *classifier*.
    """
    if isinstance(exc, ClassifiedError):
        if not exc.operation:
            exc.operation = operation
        return exc
    return ClassifiedError(
        classifier(exc),
        str(exc) or type(exc).__name__,
        operation=operation,
        cause=exc,
    )


_HINTS: dict[ErrorCategory, tuple[str, str]] = {
    ErrorCategory.AUTH: ("Authentication failed", "check that the API token or access keys are configured"),
    ErrorCategory.NOT_FOUND: ("Resource not found", "use the list command to see available resources"),
    ErrorCategory.CONFLICT: ("Resource conflict", "the resource may already exist"),
    ErrorCategory.RATE_LIMIT: ("Rate limit exceeded", "retry later or lower the request rate"),
    ErrorCategory.NETWORK: ("Network error", "check network connectivity"),
    ErrorCategory.VALIDATION: ("Invalid request", "check the command arguments"),
    ErrorCategory.PERMISSION: ("Permission denied", "check the token or IAM permissions"),
}


def format_error(exc: BaseException | None) -> str:
    """Render a user-facing message, with a hint for classified errors."""
    if exc is None:
        return ""
    if not isinstance(exc, ClassifiedError):
        return str(exc)
    hint = _HINTS.get(exc.category)
    if hint is None:
        return str(exc)
    title, advice = hint
    return f"{title}: {exc}\nHint: {advice}"


def exit_code_for(exc: BaseException | None) -> int:
    """Process exit code for an error surfaced to the CLI."""
    if exc is None:
        return 0
    if not isinstance(exc, ClassifiedError):
        return 1
    if exc.category in (ErrorCategory.AUTH, ErrorCategory.PERMISSION):
        return 3
    if exc.category in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT):
        return 4
    if exc.category is ErrorCategory.VALIDATION:
        return 5
    return 1
