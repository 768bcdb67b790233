"""AWS provisioners for batch runs: certificates, distributions, invalidations."""

from __future__ import annotations

from cloudctl.aws.cdn import CloudFront
from cloudctl.aws.cert import CertificateManager
from cloudctl.base.provisioner import ProvisionerBlueprint
from cloudctl.batch.plan import (
    CertificateEntry,
    DistributionEntry,
    InvalidationEntry,
    ItemSpec,
)


class CertificateProvisioner(ProvisionerBlueprint):
    """Requests ACM certificates from a flat plan.

    Certificate requests are not idempotent, so each item carries an ACM
    ``IdempotencyToken``.
    """

    requires_idempotency_token = True
    group_label = "batch"
    item_noun = "certificate"

    def __init__(self, acm: CertificateManager) -> None:
        self.acm = acm

    def resolve_group(self, group_key: str) -> str:
        return group_key

    def create_item(
        self,
        target_id: str,
        item: ItemSpec,
        idempotency_token: str | None = None,
    ) -> str:
        entry: CertificateEntry = item.payload
        cert = self.acm.request_certificate(
            entry.domain,
            entry.sans,
            idempotency_token=idempotency_token,
            wait_for_validation=False,
        )
        return cert["arn"]  # type: ignore[no-any-return]


class DistributionProvisioner(ProvisionerBlueprint):
    """Creates CloudFront distributions from a flat plan.

    The idempotency token becomes the distribution's ``CallerReference``.
    """

    requires_idempotency_token = True
    group_label = "batch"
    item_noun = "distribution"

    def __init__(self, cdn: CloudFront) -> None:
        self.cdn = cdn

    def resolve_group(self, group_key: str) -> str:
        return group_key

    def create_item(
        self,
        target_id: str,
        item: ItemSpec,
        idempotency_token: str | None = None,
    ) -> str:
        entry: DistributionEntry = item.payload
        return self.cdn.create_distribution(entry, caller_reference=idempotency_token)["id"]  # type: ignore[no-any-return]


class InvalidationProvisioner(ProvisionerBlueprint):
    """Creates cache invalidations, grouped by distribution.

    Each group key is a distribution id, checked to exist before any of its
    invalidations is submitted.
    """

    requires_idempotency_token = True
    group_label = "distribution"
    item_noun = "invalidation"

    def __init__(self, cdn: CloudFront) -> None:
        self.cdn = cdn

    def resolve_group(self, group_key: str) -> str:
        return self.cdn.get_distribution(group_key)["id"]  # type: ignore[no-any-return]

    def create_item(
        self,
        target_id: str,
        item: ItemSpec,
        idempotency_token: str | None = None,
    ) -> str:
        entry: InvalidationEntry = item.payload
        inv = self.cdn.create_invalidation(
            target_id, entry.paths, caller_reference=idempotency_token
        )
        return inv["id"]  # type: ignore[no-any-return]
