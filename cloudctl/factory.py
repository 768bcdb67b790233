"""Batch provisioner factory.

Provides :func:`provisioner_factory`, the single entry-point for building the
provisioner that a batch run drives, and :func:`load_plan` for the matching
plan file. The function dispatches on the batch ``kind`` and returns a typed
instance via ``@overload`` signatures.
"""

from pathlib import Path
from typing import Callable, Literal, overload

from cloudctl.aws import (
    CertificateManager,
    CertificateProvisioner,
    CloudFront,
    DistributionProvisioner,
    InvalidationProvisioner,
)
from cloudctl.base import ProvisionerBlueprint, existing_batch_kinds, existing_cloud_providers
from cloudctl.base.config import Config
from cloudctl.batch.plan import PLAN_LOADERS, ExecutionPlan
from cloudctl.cloudflare import CloudflareClient, DNSRecordProvisioner


def _dns(config: Config, profile: str | None) -> DNSRecordProvisioner:
    client = CloudflareClient(config.cloudflare_profile(profile), timeout=config.api.timeout)
    return DNSRecordProvisioner(client)


def _certificates(config: Config, profile: str | None) -> CertificateProvisioner:
    return CertificateProvisioner(CertificateManager(config.aws_profile(profile)))


def _distributions(config: Config, profile: str | None) -> DistributionProvisioner:
    return DistributionProvisioner(CloudFront(config.aws_profile(profile)))


def _invalidations(config: Config, profile: str | None) -> InvalidationProvisioner:
    return InvalidationProvisioner(CloudFront(config.aws_profile(profile)))


# batch kind -> (cloud provider, builder)
_FACTORY_REGISTRY: dict[str, tuple[existing_cloud_providers, Callable[[Config, str | None], ProvisionerBlueprint]]] = {
    "dns": ("cloudflare", _dns),
    "certificates": ("aws", _certificates),
    "distributions": ("aws", _distributions),
    "invalidations": ("aws", _invalidations),
}


@overload
def provisioner_factory(
    kind: Literal["dns"], config: Config, profile: str | None = None
) -> DNSRecordProvisioner: ...


@overload
def provisioner_factory(
    kind: Literal["certificates"], config: Config, profile: str | None = None
) -> CertificateProvisioner: ...


@overload
def provisioner_factory(
    kind: Literal["distributions"], config: Config, profile: str | None = None
) -> DistributionProvisioner: ...


@overload
def provisioner_factory(
    kind: Literal["invalidations"], config: Config, profile: str | None = None
) -> InvalidationProvisioner: ...


def provisioner_factory(
    kind: existing_batch_kinds,
    config: Config,
    profile: str | None = None,
) -> ProvisionerBlueprint:
    """
    Build the provisioner for a batch kind.
    Args:
        kind: Batch kind (``dns``, ``certificates``, ``distributions``,
            ``invalidations``).
        config: Loaded configuration, used for credentials and timeouts.
        profile: Provider profile name; the configured default when omitted.
    Returns:
        A provisioner ready for :func:`cloudctl.batch.run_batch`.
    Raises:
        ValueError: If the batch kind is not supported.
        ConfigError: If the provider profile is missing or incomplete.
    """
    if kind not in _FACTORY_REGISTRY:
        raise ValueError(f"Unsupported batch kind: {kind}")
    _, builder = _FACTORY_REGISTRY[kind]
    return builder(config, profile)


def provider_for(kind: existing_batch_kinds) -> existing_cloud_providers:
    """Cloud provider that serves *kind*."""
    if kind not in _FACTORY_REGISTRY:
        raise ValueError(f"Unsupported batch kind: {kind}")
    return _FACTORY_REGISTRY[kind][0]


def load_plan(kind: existing_batch_kinds, path: str | Path) -> ExecutionPlan:
    """Load and validate the plan file for *kind*."""
    if kind not in PLAN_LOADERS:
        raise ValueError(f"Unsupported batch kind: {kind}")
    return PLAN_LOADERS[kind](path)
