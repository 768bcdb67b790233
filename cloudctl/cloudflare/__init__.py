"""Cloudflare zones, DNS records and cache purge."""

from .client import CloudflareClient
from .provisioner import DNSRecordProvisioner

__all__ = ["CloudflareClient", "DNSRecordProvisioner"]
