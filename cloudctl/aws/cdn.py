"""AWS CloudFront distributions and cache invalidations."""

from __future__ import annotations

import logging
import time
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from cloudctl.aws.client import handle, make_client
from cloudctl.base.config import AWSProfile
from cloudctl.base.exceptions import ClassifiedError, ErrorCategory
from cloudctl.base.logger import ContextAdapter
from cloudctl.batch.plan import BehaviorEntry, DistributionEntry

log = ContextAdapter(logging.getLogger("cloudctl.aws"), provider="aws")

# AWS managed policy names → policy ids. Unknown names are passed through as ids.
CACHE_POLICY_IDS = {
    "Managed-CachingDisabled": "4135ea2d-6df8-44a3-9df3-4b5a84be39ad",
    "Managed-CachingOptimized": "658327ea-f89d-4fab-a63d-7e88639e58f6",
}
ORIGIN_REQUEST_POLICY_IDS = {
    "Managed-AllViewer": "216adef6-5c7f-47e4-b989-5492eafa07d3",
}
RESPONSE_HEADERS_POLICY_IDS = {
    "Managed-SimpleCORS": "60669652-455b-4ae9-85a4-c4c02393f86c",
}

_ALL_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"]
_CACHED_METHODS = ["GET", "HEAD"]


def _summary(d: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": d["Id"],
        "domain_name": d.get("DomainName", ""),
        "status": d.get("Status", ""),
        "enabled": d.get("Enabled", False),
        "aliases": d.get("Aliases", {}).get("Items", []),
        "origins": [
            {"id": o["Id"], "domain_name": o["DomainName"], "path": o.get("OriginPath", "")}
            for o in d.get("Origins", {}).get("Items", [])
        ],
        "comment": d.get("Comment", ""),
        "last_modified": d.get("LastModifiedTime"),
    }


def _distribution(d: dict[str, Any]) -> dict[str, Any]:
    config = d.get("DistributionConfig", {})
    return _summary({**config, **d})


def _invalidation(inv: dict[str, Any]) -> dict[str, Any]:
    batch = inv.get("InvalidationBatch", {})
    return {
        "id": inv["Id"],
        "status": inv.get("Status", ""),
        "create_time": inv.get("CreateTime"),
        "caller_reference": batch.get("CallerReference", ""),
        "paths": batch.get("Paths", {}).get("Items", []),
    }


def _behavior(b: BehaviorEntry, origin_id: str) -> dict[str, Any]:
    return {
        "TargetOriginId": origin_id,
        "ViewerProtocolPolicy": b.viewer_protocol_policy,
        "CachePolicyId": CACHE_POLICY_IDS.get(b.cache_policy, b.cache_policy),
        "OriginRequestPolicyId": ORIGIN_REQUEST_POLICY_IDS.get(
            b.origin_request_policy, b.origin_request_policy
        ),
        "ResponseHeadersPolicyId": RESPONSE_HEADERS_POLICY_IDS.get(
            b.response_headers_policy, b.response_headers_policy
        ),
        "Compress": True,
        "AllowedMethods": {
            "Quantity": len(_ALL_METHODS),
            "Items": _ALL_METHODS,
            "CachedMethods": {"Quantity": len(_CACHED_METHODS), "Items": _CACHED_METHODS},
        },
    }


def build_distribution_config(config: DistributionEntry, caller_reference: str) -> dict[str, Any]:
    """Translate a plan entry into a CloudFront ``DistributionConfig``.

    The behavior with priority 1 and path ``*`` becomes the default cache
    behavior; the others become ordered cache behaviors.
    """
    origin_id = f"{config.name}-origin"
    default = next(b for b in config.behaviors if b.is_default)
    extra = sorted((b for b in config.behaviors if not b.is_default), key=lambda b: b.priority)

    dist_config: dict[str, Any] = {
        "CallerReference": caller_reference,
        "Comment": config.name,
        "Enabled": True,
        "Origins": {
            "Quantity": 1,
            "Items": [
                {
                    "Id": origin_id,
                    "DomainName": config.origin.domain,
                    "CustomOriginConfig": {
                        "HTTPPort": 80,
                        "HTTPSPort": 443,
                        "OriginProtocolPolicy": "http-only",
                        "OriginSslProtocols": {"Quantity": 1, "Items": ["TLSv1.2"]},
                    },
                }
            ],
        },
        "DefaultCacheBehavior": _behavior(default, origin_id),
        "Aliases": {"Quantity": len(config.aliases), "Items": list(config.aliases)},
        "ViewerCertificate": {
            "ACMCertificateArn": config.certificate_arn,
            "SSLSupportMethod": "sni-only",
            "MinimumProtocolVersion": "TLSv1.2_2021",
        },
    }
    if extra:
        dist_config["CacheBehaviors"] = {
            "Quantity": len(extra),
            "Items": [{"PathPattern": b.path_pattern, **_behavior(b, origin_id)} for b in extra],
        }
    if config.waf_arn:
        dist_config["WebACLId"] = config.waf_arn
    return dist_config


def build_origin_distribution_config(
    origin_domain: str,
    caller_reference: str,
    *,
    aliases: list[str] | None = None,
    comment: str = "",
    certificate_arn: str | None = None,
    price_class: str = "PriceClass_100",
    default_root_object: str = "",
) -> dict[str, Any]:
    """``DistributionConfig`` for a single HTTPS origin with one default behavior.

    Viewers are redirected to HTTPS and cached with the managed
    ``CachingOptimized`` policy. Without aliases the CloudFront default
    certificate is used.
    """
    aliases = list(aliases or [])
    origin_id = "origin-1"
    dist_config: dict[str, Any] = {
        "CallerReference": caller_reference,
        "Comment": comment,
        "Enabled": True,
        "PriceClass": price_class,
        "DefaultRootObject": default_root_object,
        "Origins": {
            "Quantity": 1,
            "Items": [
                {
                    "Id": origin_id,
                    "DomainName": origin_domain,
                    "CustomOriginConfig": {
                        "HTTPPort": 80,
                        "HTTPSPort": 443,
                        "OriginProtocolPolicy": "https-only",
                        "OriginSslProtocols": {"Quantity": 1, "Items": ["TLSv1.2"]},
                    },
                }
            ],
        },
        "DefaultCacheBehavior": {
            "TargetOriginId": origin_id,
            "ViewerProtocolPolicy": "redirect-to-https",
            "CachePolicyId": CACHE_POLICY_IDS["Managed-CachingOptimized"],
            "Compress": True,
            "AllowedMethods": {
                "Quantity": len(_ALL_METHODS),
                "Items": _ALL_METHODS,
                "CachedMethods": {"Quantity": len(_CACHED_METHODS), "Items": _CACHED_METHODS},
            },
        },
        "Aliases": {"Quantity": len(aliases), "Items": aliases},
    }
    if aliases:
        dist_config["ViewerCertificate"] = {
            "ACMCertificateArn": certificate_arn,
            "SSLSupportMethod": "sni-only",
            "MinimumProtocolVersion": "TLSv1.2_2021",
        }
    else:
        dist_config["ViewerCertificate"] = {"CloudFrontDefaultCertificate": True}
    return dist_config


class CloudFront:
    """AWS CloudFront service.

    Attributes:
        client: boto3 CloudFront client.
    """

    def __init__(self, profile: AWSProfile) -> None:
        """Initialize the CloudFront client.

        Args:
            profile: AWS profile with access key id and secret.
        """
        self.client = make_client("cloudfront", profile)

    # --- Distributions ---

    def list_distributions(self) -> list[dict[str, Any]]:
        """List all distributions.

        Returns:
            List of dicts with ``id``, ``domain_name``, ``status``,
            ``enabled``, ``aliases``, ``origins``, ``comment``.
        """
        try:
            paginator = self.client.get_paginator("list_distributions")
            distributions = [
                _summary(item)
                for page in paginator.paginate()
                for item in page.get("DistributionList", {}).get("Items", [])
            ]
        except (ClientError, BotoCoreError) as e:
            handle(e, "list distributions")
        log.info("Listed %d distributions", len(distributions))
        return distributions

    def get_distribution(self, distribution_id: str) -> dict[str, Any]:
        try:
            resp = self.client.get_distribution(Id=distribution_id)
        except (ClientError, BotoCoreError) as e:
            handle(e, f"get distribution {distribution_id}")
        return _distribution(resp["Distribution"])

    def create_distribution(
        self, config: DistributionEntry, caller_reference: str | None = None
    ) -> dict[str, Any]:
        """Create a distribution from a plan entry.

        A ``Name`` tag is added afterwards; failing to tag does not fail the
        creation.

        Args:
            config: Distribution definition.
            caller_reference: Idempotency reference; generated from the name
                and current time when omitted.

        Returns:
            Dict with ``id``, ``arn``, ``domain_name``, ``name``, ``status``,
            ``caller_reference``.
        """
        reference = caller_reference or f"{config.name}-{int(time.time())}"
        try:
            resp = self.client.create_distribution(
                DistributionConfig=build_distribution_config(config, reference)
            )
        except (ClientError, BotoCoreError) as e:
            handle(e, f"create distribution {config.name}")

        dist = resp["Distribution"]
        try:
            self.client.tag_resource(
                Resource=dist["ARN"],
                Tags={"Items": [{"Key": "Name", "Value": config.name}]},
            )
        except (ClientError, BotoCoreError) as e:
            log.warning(
                "Failed to tag distribution %s: %s",
                dist["Id"],
                e,
                extra={"operation": "tag distribution"},
            )

        log.info(
            "Created distribution %s (%s)",
            config.name,
            dist["Id"],
            extra={"operation": "create distribution"},
        )
        return {
            "id": dist["Id"],
            "arn": dist["ARN"],
            "domain_name": dist.get("DomainName", ""),
            "name": config.name,
            "status": dist.get("Status", ""),
            "caller_reference": reference,
        }

    def create_origin_distribution(
        self,
        origin_domain: str,
        *,
        aliases: list[str] | None = None,
        comment: str = "",
        certificate_arn: str | None = None,
        price_class: str = "PriceClass_100",
        default_root_object: str = "",
        caller_reference: str | None = None,
    ) -> dict[str, Any]:
        """Create a distribution in front of one origin.

        Args:
            origin_domain: Origin host name, served over HTTPS.
            aliases: Alternate domain names; require ``certificate_arn``.
            comment: Distribution comment.
            certificate_arn: ACM certificate (``us-east-1``) for the aliases.
            price_class: CloudFront price class.
            default_root_object: Object served for ``/``.
            caller_reference: Idempotency reference; generated when omitted.

        Returns:
            The new distribution as from :meth:`get_distribution`, plus
            ``arn`` and ``caller_reference``.

        Raises:
            ClassifiedError: ``VALIDATION`` for a missing origin, or aliases
                without a certificate.
        """
        operation = "create distribution"
        if not origin_domain:
            raise ClassifiedError(ErrorCategory.VALIDATION, "origin domain is required", operation=operation)
        if aliases and not certificate_arn:
            raise ClassifiedError(
                ErrorCategory.VALIDATION, "aliases require a certificate ARN", operation=operation
            )
        reference = caller_reference or f"cloudctl-{time.time_ns()}"
        try:
            resp = self.client.create_distribution(
                DistributionConfig=build_origin_distribution_config(
                    origin_domain,
                    reference,
                    aliases=aliases,
                    comment=comment,
                    certificate_arn=certificate_arn,
                    price_class=price_class,
                    default_root_object=default_root_object,
                )
            )
        except (ClientError, BotoCoreError) as e:
            handle(e, f"{operation} for {origin_domain}")

        dist = resp["Distribution"]
        log.info("Created distribution %s for %s", dist["Id"], origin_domain, extra={"operation": operation})
        return {**_distribution(dist), "arn": dist.get("ARN", ""), "caller_reference": reference}

    def update_distribution(
        self,
        distribution_id: str,
        comment: str | None = None,
        enabled: bool | None = None,
    ) -> dict[str, Any]:
        """Change a distribution's comment and/or enabled state.

        The current config is fetched with its ETag and written back with
        ``IfMatch``, so a concurrent change fails instead of being lost.

        Raises:
            ClassifiedError: ``VALIDATION`` if nothing would change.
        """
        operation = f"update distribution {distribution_id}"
        if comment is None and enabled is None:
            raise ClassifiedError(ErrorCategory.VALIDATION, "nothing to update", operation=operation)
        try:
            current = self.client.get_distribution_config(Id=distribution_id)
            config = current["DistributionConfig"]
            if comment is not None:
                config["Comment"] = comment
            if enabled is not None:
                config["Enabled"] = enabled
            resp = self.client.update_distribution(
                Id=distribution_id,
                DistributionConfig=config,
                IfMatch=current["ETag"],
            )
        except (ClientError, BotoCoreError) as e:
            handle(e, operation)
        log.info("Updated distribution %s", distribution_id, extra={"operation": "update distribution"})
        return _distribution(resp["Distribution"])

    # --- Invalidations ---

    def create_invalidation(
        self,
        distribution_id: str,
        paths: list[str],
        caller_reference: str | None = None,
    ) -> dict[str, Any]:
        """Create a cache invalidation.

        Args:
            distribution_id: Distribution ID.
            paths: Paths to invalidate (``/index.html``, ``/static/*``).
            caller_reference: Idempotency reference; generated when omitted.

        Returns:
            Dict with ``id``, ``status``, ``create_time``,
            ``caller_reference``, ``paths``.

        Raises:
            ClassifiedError: ``VALIDATION`` if no distribution or path is
                given; otherwise the classified CloudFront failure.
        """
        if not distribution_id:
            raise ClassifiedError(
                ErrorCategory.VALIDATION, "distribution_id is required", operation="create invalidation"
            )
        if not paths:
            raise ClassifiedError(
                ErrorCategory.VALIDATION, "at least one path is required", operation="create invalidation"
            )

        reference = caller_reference or f"cloudctl-{time.time_ns()}"
        try:
            resp = self.client.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "CallerReference": reference,
                    "Paths": {"Quantity": len(paths), "Items": list(paths)},
                },
            )
        except (ClientError, BotoCoreError) as e:
            handle(e, f"create invalidation for {distribution_id}")

        inv = resp["Invalidation"]
        log.info(
            "Created invalidation %s for %s",
            inv["Id"],
            distribution_id,
            extra={"operation": "create invalidation"},
        )
        return {
            "id": inv["Id"],
            "status": inv.get("Status", ""),
            "create_time": inv.get("CreateTime"),
            "caller_reference": reference,
            "paths": list(paths),
        }

    def get_invalidation(self, distribution_id: str, invalidation_id: str) -> dict[str, Any]:
        try:
            resp = self.client.get_invalidation(DistributionId=distribution_id, Id=invalidation_id)
        except (ClientError, BotoCoreError) as e:
            handle(e, f"get invalidation {invalidation_id}")
        return _invalidation(resp["Invalidation"])

    def list_invalidations(self, distribution_id: str) -> list[dict[str, Any]]:
        try:
            paginator = self.client.get_paginator("list_invalidations")
            return [
                {
                    "id": item["Id"],
                    "status": item.get("Status", ""),
                    "create_time": item.get("CreateTime"),
                }
                for page in paginator.paginate(DistributionId=distribution_id)
                for item in page.get("InvalidationList", {}).get("Items", [])
            ]
        except (ClientError, BotoCoreError) as e:
            handle(e, f"list invalidations for {distribution_id}")
