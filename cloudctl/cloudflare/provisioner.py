"""Cloudflare DNS record provisioner for batch runs."""

from __future__ import annotations

from cloudctl.base.provisioner import ProvisionerBlueprint
from cloudctl.batch.plan import DNSRecordEntry, ItemSpec
from cloudctl.cloudflare.client import CloudflareClient


class DNSRecordProvisioner(ProvisionerBlueprint):
    """Creates DNS records zone by zone.

    Groups are zone names, resolved to zone ids; items are
    :class:`~cloudctl.batch.plan.DNSRecordEntry` payloads.
    """

    group_label = "zone"
    item_noun = "record"

    def __init__(self, client: CloudflareClient) -> None:
        self.client = client

    def resolve_group(self, group_key: str) -> str:
        return self.client.get_zone_by_name(group_key)["id"]  # type: ignore[no-any-return]

    def create_item(
        self,
        target_id: str,
        item: ItemSpec,
        idempotency_token: str | None = None,
    ) -> str:
        record: DNSRecordEntry = item.payload
        created = self.client.create_dns_record(
            target_id,
            record.type,
            record.name,
            record.content,
            ttl=record.ttl,
            proxied=record.proxied,
        )
        return created["id"]  # type: ignore[no-any-return]

    def close(self) -> None:
        self.client.close()
