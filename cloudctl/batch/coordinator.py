"""
Batch provisioning coordinator.

Runs an :class:`~cloudctl.batch.plan.ExecutionPlan` against a provisioner:
each group key is resolved to a target, then the group's items are created
one after another, every provider call going through
:func:`~cloudctl.base.retry.execute`. Groups run either strictly in order
(``concurrency <= 1``) or as asyncio tasks gated by a semaphore. Failures
are recorded, never raised: the run always covers the whole plan.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from cloudctl.base.async_support import async_wrap
from cloudctl.base.exceptions import ClassifiedError
from cloudctl.base.provisioner import ProvisionerBlueprint
from cloudctl.base.retry import CancelToken, RetryPolicy, execute
from cloudctl.batch.plan import ExecutionPlan, GroupSpec, ItemSpec
from cloudctl.batch.report import BatchReport, GroupResult, ItemResult

logger = logging.getLogger("cloudctl.batch")

MAX_CONCURRENCY = 10

ProgressCallback = Callable[[str], None]

_token_counter = itertools.count(1)
_token_lock = threading.Lock()


def new_idempotency_token() -> str:
    """Return a process-unique token for a non-idempotent create call.

    Built from the wall clock in nanoseconds plus a counter; at most 32 word
    characters, which satisfies both ACM ``IdempotencyToken`` and CloudFront
    ``CallerReference``.
    """
    with _token_lock:
        n = next(_token_counter)
    return f"cloudctl{time.time_ns():x}{n & 0xFFFF:04x}"


class BatchCoordinator:
    """Drives a provisioner over an execution plan.

    Args:
        provisioner: Resource API used to resolve groups and create items.
        policy: Retry policy applied to every provider call.
        log: Logger; defaults to ``cloudctl.batch``.
        token_factory: Source of idempotency tokens for items that need one
            and do not carry their own.
    """

    def __init__(
        self,
        provisioner: ProvisionerBlueprint,
        policy: RetryPolicy,
        *,
        log: logging.Logger | None = None,
        token_factory: Callable[[], str] = new_idempotency_token,
    ) -> None:
        self.provisioner = provisioner
        self.policy = policy
        self.log = log or logger
        self.token_factory = token_factory
        self._resolve = async_wrap(provisioner.resolve_group)
        self._create = async_wrap(provisioner.create_item)

    async def run(
        self,
        plan: ExecutionPlan,
        concurrency: int = 1,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> BatchReport:
        """Execute every group and item of *plan*.

        Args:
            plan: Groups and items to create.
            concurrency: Number of groups processed at once; values above
                :data:`MAX_CONCURRENCY` are clamped, values ``<= 1`` mean
                strictly sequential.
            progress: Optional callback receiving one-line progress messages.
            cancel: Optional token shared by every call of the run.

        Returns:
            The finalised :class:`BatchReport`, in plan order.
        """
        started_at = datetime.now(timezone.utc)
        total = len(plan.groups)
        workers = min(max(concurrency, 1), MAX_CONCURRENCY)
        self.log.info(
            "Starting batch: %d %ss, %d %ss, concurrency %d",
            total,
            self.provisioner.group_label,
            plan.total_items,
            self.provisioner.item_noun,
            workers,
        )

        results: list[GroupResult | None] = [None] * total
        if workers <= 1:
            for idx, group in enumerate(plan.groups):
                results[idx] = await self._run_group(idx, total, group, progress, cancel)
        else:
            semaphore = asyncio.Semaphore(workers)

            async def worker(idx: int, group: GroupSpec) -> None:
                async with semaphore:
                    results[idx] = await self._run_group(idx, total, group, progress, cancel)

            await asyncio.gather(*(worker(i, g) for i, g in enumerate(plan.groups)))

        report = BatchReport(
            group_results=tuple(r for r in results if r is not None),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        self.log.info(
            "Batch finished: %d/%d %ss and %d/%d %ss succeeded in %.2fs",
            report.success_groups,
            report.total_groups,
            self.provisioner.group_label,
            report.success_items,
            report.total_items,
            self.provisioner.item_noun,
            report.duration.total_seconds(),
        )
        return report

    async def _run_group(
        self,
        idx: int,
        total: int,
        group: GroupSpec,
        progress: ProgressCallback | None,
        cancel: CancelToken | None,
    ) -> GroupResult:
        label = self.provisioner.group_label
        self._notify(progress, f"Processing {label} {idx + 1}/{total}: {group.key}")
        extra = {"group": group.key}

        resolved = await execute(
            f"resolve {label} {group.key}",
            self.policy,
            lambda: self._resolve(group.key),
            cancel=cancel,
            log=self.log,
        )
        if not resolved.succeeded:
            error = resolved.error
            self.log.error(
                "Failed to resolve %s %s, skipping %d %ss: %s",
                label,
                group.key,
                len(group.items),
                self.provisioner.item_noun,
                error,
                extra=extra,
            )
            return GroupResult(
                group_key=group.key,
                item_results=tuple(
                    ItemResult(
                        item_key=item.key,
                        succeeded=False,
                        error=error,
                        cancelled=resolved.cancelled,
                    )
                    for item in group.items
                ),
                resolution_error=error,
            )

        target_id = str(resolved.value)
        item_results: list[ItemResult] = []
        for item_idx, item in enumerate(group.items):
            self._notify(
                progress,
                f"  └─ {group.key}: Creating {self.provisioner.item_noun} "
                f"{item_idx + 1}/{len(group.items)} ({item.description or item.key})",
            )
            item_results.append(await self._run_item(group.key, target_id, item, cancel))

        result = GroupResult(
            group_key=group.key,
            item_results=tuple(item_results),
            target_id=target_id,
        )
        self.log.info(
            "Finished %s %s: %d/%d %ss succeeded",
            label,
            group.key,
            result.success_items,
            result.total_items,
            self.provisioner.item_noun,
            extra=extra,
        )
        return result

    async def _run_item(
        self,
        group_key: str,
        target_id: str,
        item: ItemSpec,
        cancel: CancelToken | None,
    ) -> ItemResult:
        token = item.idempotency_token
        if token is None and self.provisioner.requires_idempotency_token:
            # Generated once so every retry of this item reuses it.
            token = self.token_factory()

        outcome = await execute(
            f"create {self.provisioner.item_noun} {item.key}",
            self.policy,
            lambda: self._create(target_id, item, token),
            cancel=cancel,
            log=self.log,
        )
        extra = {"group": group_key, "item": item.key}
        if outcome.succeeded:
            self.log.debug("Created %s %s", self.provisioner.item_noun, item.key, extra=extra)
            return ItemResult(
                item_key=item.key,
                succeeded=True,
                resource_id=str(outcome.value),
                attempts=outcome.attempts,
                idempotency_token=token,
            )

        error: ClassifiedError | None = outcome.error
        self.log.error(
            "Failed to create %s %s: %s",
            self.provisioner.item_noun,
            item.key,
            error,
            extra=extra,
        )
        return ItemResult(
            item_key=item.key,
            succeeded=False,
            error=error,
            attempts=outcome.attempts,
            idempotency_token=token,
            cancelled=outcome.cancelled,
        )

    def _notify(self, progress: ProgressCallback | None, message: str) -> None:
        if progress is None:
            return
        try:
            progress(message)
        except Exception:
            self.log.warning("Progress callback failed", exc_info=True)


async def run_batch(
    plan: ExecutionPlan,
    provisioner: ProvisionerBlueprint,
    policy: RetryPolicy,
    *,
    concurrency: int = 1,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
    log: logging.Logger | None = None,
    token_factory: Callable[[], str] = new_idempotency_token,
) -> BatchReport:
    """Run *plan* with a fresh :class:`BatchCoordinator`."""
    coordinator = BatchCoordinator(provisioner, policy, log=log, token_factory=token_factory)
    return await coordinator.run(plan, concurrency=concurrency, progress=progress, cancel=cancel)
