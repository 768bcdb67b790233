"""cloudctl: Cloudflare and AWS CDN provisioning from the command line.

Single operations and batch runs both go through the retrying executor in
:mod:`cloudctl.base.retry`. Batch runs are driven by
:func:`cloudctl.batch.run_batch` with a provisioner from
:func:`provisioner_factory`::

    from cloudctl import load_config, load_plan, provisioner_factory, run_batch

    config = load_config()
    plan = load_plan("dns", "records.yaml")
    report = asyncio.run(
        run_batch(plan, provisioner_factory("dns", config), config.api.retry, concurrency=4)
    )
"""

from .base import (
    ClassifiedError,
    ErrorCategory,
    ProvisionerBlueprint,
    RetryPolicy,
    CancelToken,
    execute,
)
from .base.config import Config, load_config
from .batch import BatchReport, ExecutionPlan, run_batch
from .factory import load_plan, provisioner_factory

__all__ = [
    "ClassifiedError",
    "ErrorCategory",
    "ProvisionerBlueprint",
    "RetryPolicy",
    "CancelToken",
    "execute",
    "Config",
    "load_config",
    "BatchReport",
    "ExecutionPlan",
    "run_batch",
    "load_plan",
    "provisioner_factory",
]
