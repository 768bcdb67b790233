"""Batch provisioning: plans, the coordinator and its reports."""

from .plan import ExecutionPlan, GroupSpec, ItemSpec
from .report import BatchReport, GroupResult, ItemResult
from .coordinator import MAX_CONCURRENCY, BatchCoordinator, new_idempotency_token, run_batch

__all__ = [
    "ExecutionPlan",
    "GroupSpec",
    "ItemSpec",
    "BatchReport",
    "GroupResult",
    "ItemResult",
    "MAX_CONCURRENCY",
    "BatchCoordinator",
    "new_idempotency_token",
    "run_batch",
]
