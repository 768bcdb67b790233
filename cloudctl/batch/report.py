"""
Batch results.

Results mirror the shape of the plan: one :class:`GroupResult` per group in
plan order, one :class:`ItemResult` per item in group order. Every counter
is derived from the item results, so the totals cannot drift from the data
they summarise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from cloudctl.base.exceptions import ClassifiedError


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one item.

    ``attempts == 0`` means the item was never attempted (group resolution
    failed or the run was cancelled first). ``cancelled`` is set when the
    item was stopped by cancellation rather than by a provider error.
    """

    item_key: str
    succeeded: bool
    resource_id: str | None = None
    error: ClassifiedError | None = None
    attempts: int = 0
    idempotency_token: str | None = None
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_key": self.item_key,
            "succeeded": self.succeeded,
            "resource_id": self.resource_id,
            "error": self.error.to_dict() if self.error else None,
            "attempts": self.attempts,
            "idempotency_token": self.idempotency_token,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class GroupResult:
    group_key: str
    item_results: tuple[ItemResult, ...] = ()
    target_id: str | None = None
    resolution_error: ClassifiedError | None = None

    @property
    def total_items(self) -> int:
        return len(self.item_results)

    @property
    def success_items(self) -> int:
        return sum(1 for r in self.item_results if r.succeeded)

    @property
    def failed_items(self) -> int:
        return self.total_items - self.success_items

    @property
    def succeeded(self) -> bool:
        return self.resolution_error is None and self.failed_items == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_key": self.group_key,
            "succeeded": self.succeeded,
            "target_id": self.target_id,
            "total_items": self.total_items,
            "success_items": self.success_items,
            "failed_items": self.failed_items,
            "resolution_error": (
                self.resolution_error.to_dict() if self.resolution_error else None
            ),
            "item_results": [r.to_dict() for r in self.item_results],
        }


@dataclass(frozen=True)
class BatchReport:
    """Final, immutable result of a batch run."""

    group_results: tuple[GroupResult, ...]
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> timedelta:
        return self.finished_at - self.started_at

    @property
    def total_groups(self) -> int:
        return len(self.group_results)

    @property
    def success_groups(self) -> int:
        return sum(1 for g in self.group_results if g.succeeded)

    @property
    def failed_groups(self) -> int:
        return self.total_groups - self.success_groups

    @property
    def total_items(self) -> int:
        return sum(g.total_items for g in self.group_results)

    @property
    def success_items(self) -> int:
        return sum(g.success_items for g in self.group_results)

    @property
    def failed_items(self) -> int:
        return sum(g.failed_items for g in self.group_results)

    @property
    def cancelled(self) -> bool:
        """True when at least one item was stopped by cancellation."""
        return any(r.cancelled for g in self.group_results for r in g.item_results)

    @property
    def has_failures(self) -> bool:
        return self.failed_items > 0 or self.failed_groups > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_groups": self.total_groups,
            "success_groups": self.success_groups,
            "failed_groups": self.failed_groups,
            "total_items": self.total_items,
            "success_items": self.success_items,
            "failed_items": self.failed_items,
            "cancelled": self.cancelled,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration.total_seconds(), 3),
            "group_results": [g.to_dict() for g in self.group_results],
        }
