"""AWS CloudFront distributions, invalidations and ACM certificates."""

from .cdn import CloudFront
from .cert import CertificateManager
from .provisioner import CertificateProvisioner, DistributionProvisioner, InvalidationProvisioner

__all__ = [
    "CloudFront",
    "CertificateManager",
    "CertificateProvisioner",
    "DistributionProvisioner",
    "InvalidationProvisioner",
]
