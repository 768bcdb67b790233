"""Shared boto3 client construction and error translation for AWS services."""

from __future__ import annotations

from typing import Any, NoReturn

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from cloudctl.base.config import AWSProfile
from cloudctl.base.exceptions import ClassifiedError, ErrorCategory, wrap_error

# CloudFront is global and certificates attached to it must live in us-east-1.
AWS_GLOBAL_REGION = "us-east-1"


def make_client(service_name: str, profile: AWSProfile) -> Any:
    """Create a boto3 client for *service_name* pinned to ``us-east-1``.

    Args:
        service_name: boto3 service name (``cloudfront``, ``acm``).
        profile: AWS profile with static credentials.
    """
    return boto3.client(
        service_name,
        aws_access_key_id=profile.access_key_id,
        aws_secret_access_key=profile.secret_access_key,
        region_name=AWS_GLOBAL_REGION,
    )


def handle(e: ClientError | BotoCoreError, operation: str) -> NoReturn:
    """Re-raise a botocore failure as a :class:`ClassifiedError`.

    botocore's messages embed the service error code and text, which the
    heuristic classifier understands; endpoint connection failures carry
    neither, so they are tagged ``NETWORK`` directly.
    """
    if isinstance(e, BotoConnectionError):
        raise ClassifiedError(ErrorCategory.NETWORK, str(e), operation=operation, cause=e) from e
    raise wrap_error(e, operation) from e
