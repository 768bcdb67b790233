"""Core building blocks shared by every provider.

Errors and their classification, the retry executor, configuration,
logging and the provisioner blueprint that batch runs drive.
"""

from .exceptions import (
    CloudctlError,
    ConfigError,
    PlanError,
    ClassifiedError,
    ErrorCategory,
    classify_error,
    classify_message,
)
from .retry import CallResult, CancelToken, RetryPolicy, execute
from .provisioner import ProvisionerBlueprint
from .supported_services import existing_batch_kinds, existing_cloud_providers


__all__ = [
    "CloudctlError",
    "ConfigError",
    "PlanError",
    "ClassifiedError",
    "ErrorCategory",
    "classify_error",
    "classify_message",
    "CallResult",
    "CancelToken",
    "RetryPolicy",
    "execute",
    "ProvisionerBlueprint",
    "existing_batch_kinds",
    "existing_cloud_providers",
]
