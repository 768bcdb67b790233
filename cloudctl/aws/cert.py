"""AWS Certificate Manager (ACM) certificates with DNS validation."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from cloudctl.aws.client import handle, make_client
from cloudctl.base.config import AWSProfile
from cloudctl.base.exceptions import ClassifiedError, ErrorCategory
from cloudctl.base.logger import ContextAdapter

log = ContextAdapter(logging.getLogger("cloudctl.aws"), provider="aws")

# Seconds to wait before each describe call while ACM generates validation records.
VALIDATION_POLL_DELAYS = (2, 3, 4, 5, 6)


def _validation_records(cert: dict[str, Any]) -> list[dict[str, str]]:
    records = []
    for option in cert.get("DomainValidationOptions", []):
        rr = option.get("ResourceRecord")
        if rr:
            records.append(
                {
                    "domain": option.get("DomainName", ""),
                    "name": rr["Name"],
                    "type": rr["Type"],
                    "value": rr["Value"],
                    "status": option.get("ValidationStatus", ""),
                }
            )
    return records


class CertificateManager:
    """AWS ACM service.

    Attributes:
        client: boto3 ACM client.
        sleep: Wait function used while polling for validation records.
    """

    def __init__(self, profile: AWSProfile, sleep: Callable[[float], None] = time.sleep) -> None:
        """Initialize the ACM client.

        Args:
            profile: AWS profile with access key id and secret.
            sleep: Injectable replacement for :func:`time.sleep`.
        """
        self.client = make_client("acm", profile)
        self.sleep = sleep

    def list_certificates(self) -> list[dict[str, Any]]:
        """List all certificates.

        Returns:
            List of dicts with ``arn``, ``domain_name``, ``status``, ``type``,
            ``in_use``, ``not_before``, ``not_after``.
        """
        try:
            paginator = self.client.get_paginator("list_certificates")
            certificates = [
                {
                    "arn": c["CertificateArn"],
                    "domain_name": c.get("DomainName", ""),
                    "status": c.get("Status", ""),
                    "type": c.get("Type", ""),
                    "in_use": c.get("InUse", False),
                    "not_before": c.get("NotBefore"),
                    "not_after": c.get("NotAfter"),
                }
                for page in paginator.paginate()
                for c in page.get("CertificateSummaryList", [])
            ]
        except (ClientError, BotoCoreError) as e:
            handle(e, "list certificates")
        log.info("Listed %d certificates", len(certificates))
        return certificates

    def get_certificate(self, arn: str) -> dict[str, Any]:
        """Describe one certificate, including its DNS validation records."""
        try:
            resp = self.client.describe_certificate(CertificateArn=arn)
        except (ClientError, BotoCoreError) as e:
            handle(e, f"get certificate {arn}")
        cert = resp["Certificate"]
        return {
            "arn": cert["CertificateArn"],
            "domain_name": cert.get("DomainName", ""),
            "status": cert.get("Status", ""),
            "type": cert.get("Type", ""),
            "in_use": bool(cert.get("InUseBy")),
            "issued_at": cert.get("IssuedAt"),
            "not_before": cert.get("NotBefore"),
            "not_after": cert.get("NotAfter"),
            "subject_alternative_names": cert.get("SubjectAlternativeNames", []),
            "validation_records": _validation_records(cert),
        }

    def request_certificate(
        self,
        domain: str,
        sans: list[str] | None = None,
        idempotency_token: str | None = None,
        wait_for_validation: bool = True,
    ) -> dict[str, Any]:
        """Request a DNS-validated certificate.

        Args:
            domain: Primary domain name.
            sans: Additional subject alternative names.
            idempotency_token: ACM idempotency token; repeated requests with
                the same token within one hour return the same certificate.
            wait_for_validation: Poll until ACM publishes the DNS validation
                records.

        Returns:
            The certificate as from :meth:`get_certificate`, or a summary with
            ``status`` ``PENDING_VALIDATION`` when the records were not
            available in time (or not waited for).
        """
        if not domain:
            raise ClassifiedError(
                ErrorCategory.VALIDATION, "domain is required", operation="request certificate"
            )
        names = [domain, *[s for s in (sans or []) if s != domain]]
        kwargs: dict[str, Any] = {
            "DomainName": domain,
            "SubjectAlternativeNames": names,
            "ValidationMethod": "DNS",
        }
        if idempotency_token:
            kwargs["IdempotencyToken"] = idempotency_token

        try:
            resp = self.client.request_certificate(**kwargs)
        except (ClientError, BotoCoreError) as e:
            handle(e, f"request certificate {domain}")
        arn = resp.get("CertificateArn")
        if not arn:
            raise ClassifiedError(
                ErrorCategory.UNKNOWN,
                "ACM returned no certificate ARN",
                operation=f"request certificate {domain}",
            )
        log.info("Requested certificate %s", arn, extra={"operation": "request certificate", "item": domain})

        if wait_for_validation:
            cert = self.wait_for_validation_records(arn)
            if cert is not None:
                return cert

        return {
            "arn": arn,
            "domain_name": domain,
            "status": "PENDING_VALIDATION",
            "subject_alternative_names": names,
            "validation_records": [],
        }

    def wait_for_validation_records(self, arn: str) -> dict[str, Any] | None:
        """Poll ACM until the certificate's DNS validation records exist.

        Returns:
            The certificate as from :meth:`get_certificate`, or ``None`` when
            no records were published within :data:`VALIDATION_POLL_DELAYS`.
        """
        for attempt, delay in enumerate(VALIDATION_POLL_DELAYS, start=1):
            self.sleep(delay)
            try:
                cert = self.get_certificate(arn)
            except ClassifiedError as e:
                log.warning(
                    "Failed to describe certificate (poll %d/%d): %s",
                    attempt,
                    len(VALIDATION_POLL_DELAYS),
                    e,
                )
                continue
            if cert["validation_records"]:
                return cert
        log.warning(
            "Validation records not available yet; run 'cloudctl aws cert get %s' later",
            arn,
        )
        return None

    def validate_certificates(self, arns: list[str]) -> None:
        """Check that every certificate is ``ISSUED``.

        Raises:
            ClassifiedError: ``VALIDATION`` naming the first certificate that
                is not issued, or the failure describing it.
        """
        for arn in arns:
            if not arn:
                continue
            cert = self.get_certificate(arn)
            if cert["status"] != "ISSUED":
                raise ClassifiedError(
                    ErrorCategory.VALIDATION,
                    f"certificate {arn} is {cert['status']}, expected ISSUED",
                    operation="validate certificates",
                )
        log.info("Validated %d certificates", len(arns))
