"""Cloudflare v4 REST client for zones, DNS records and cache purge."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cloudctl.base.config import CloudflareProfile
from cloudctl.base.exceptions import (
    ClassifiedError,
    ErrorCategory,
    category_for_status,
    classify_message,
)
from cloudctl.base.logger import ContextAdapter

log = ContextAdapter(logging.getLogger("cloudctl.cloudflare"), provider="cloudflare")

ZONES_PER_PAGE = 50
RECORDS_PER_PAGE = 100


def _zone(z: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": z["id"],
        "name": z["name"],
        "status": z.get("status", ""),
        "paused": z.get("paused", False),
        "name_servers": z.get("name_servers", []),
    }


def _record(r: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": r["id"],
        "type": r["type"],
        "name": r["name"],
        "content": str(r.get("content", "")),
        "ttl": r.get("ttl", 1),
        "proxied": r.get("proxied", False),
        "proxiable": r.get("proxiable", False),
        "created_on": r.get("created_on"),
        "modified_on": r.get("modified_on"),
    }


class CloudflareClient:
    """Thin synchronous wrapper over the Cloudflare v4 API.

    Every failure is raised as :class:`ClassifiedError`. When Cloudflare
    answered with an HTTP error the category comes from the status code;
    transport failures are ``NETWORK``.

    Attributes:
        http: ``httpx.Client`` bound to the API base URL and token.
    """

    BASE_URL = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        profile: CloudflareProfile,
        timeout: float = 30.0,
        http: httpx.Client | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            profile: Cloudflare profile holding the API token.
            timeout: Per-request timeout in seconds.
            http: Pre-built client, mainly for tests.
        """
        self.http = http or httpx.Client(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {profile.api_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> CloudflareClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        log.debug("Cloudflare API %s %s", method, path, extra={"operation": operation})
        try:
            response = self.http.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise ClassifiedError(
                ErrorCategory.NETWORK,
                str(e) or type(e).__name__,
                operation=operation,
                cause=e,
            ) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_error or not data.get("success", False):
            errors = data.get("errors") or []
            message = (
                errors[0].get("message", "unknown error")
                if errors
                else f"HTTP {response.status_code}"
            )
            category = (
                category_for_status(response.status_code)
                if response.is_error
                else classify_message(message)
            )
            raise ClassifiedError(
                category,
                message,
                operation=operation,
                http_status=response.status_code,
            )
        return data

    def _paged(
        self,
        path: str,
        operation: str,
        params: dict[str, Any],
        per_page: int,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = self._request(
                "GET",
                path,
                operation,
                params={**params, "page": page, "per_page": per_page},
            )
            items.extend(data.get("result") or [])
            total_pages = (data.get("result_info") or {}).get("total_pages", 1)
            if page >= total_pages:
                return items
            page += 1

    # --- Zones ---

    def list_zones(self, name: str | None = None) -> list[dict[str, Any]]:
        """List zones, optionally filtered by exact name.

        Returns:
            List of dicts with ``id``, ``name``, ``status``, ``paused``,
            ``name_servers``.
        """
        params = {"name": name} if name else {}
        zones = [_zone(z) for z in self._paged("/zones", "list zones", params, ZONES_PER_PAGE)]
        log.info("Listed %d zones", len(zones), extra={"operation": "list zones"})
        return zones

    def get_zone(self, zone_id: str) -> dict[str, Any]:
        data = self._request("GET", f"/zones/{zone_id}", "get zone")
        return _zone(data["result"])

    def get_zone_by_name(self, name: str) -> dict[str, Any]:
        """Find a zone by its domain name.

        Raises:
            ClassifiedError: ``NOT_FOUND`` if no zone has exactly this name.
        """
        for zone in self.list_zones(name=name):
            if zone["name"] == name:
                return zone
        raise ClassifiedError(
            ErrorCategory.NOT_FOUND,
            f"zone not found: {name}",
            operation="find zone",
        )

    def account_id(self) -> str:
        """Return the account that owns the token's first zone.

        Raises:
            ClassifiedError: ``NOT_FOUND`` if the token sees no zones.
        """
        data = self._request(
            "GET", "/zones", "get account id", params={"page": 1, "per_page": 1}
        )
        zones = data.get("result") or []
        account = (zones[0].get("account") or {}).get("id") if zones else None
        if not account:
            raise ClassifiedError(
                ErrorCategory.NOT_FOUND,
                "no zone found to determine the account id; create the first zone in the dashboard",
                operation="get account id",
            )
        return account  # type: ignore[no-any-return]

    def create_zone(self, name: str, account_id: str | None = None) -> dict[str, Any]:
        """Add a zone to the account.

        Args:
            name: Domain name of the new zone.
            account_id: Owning account; looked up with :meth:`account_id`
                when omitted.

        Returns:
            The new zone as from :meth:`get_zone`; ``status`` is ``pending``
            until the name servers are switched to Cloudflare.
        """
        account_id = account_id or self.account_id()
        data = self._request(
            "POST",
            "/zones",
            f"create zone {name}",
            json={"name": name, "account": {"id": account_id}, "type": "full"},
        )
        zone = _zone(data["result"])
        log.info("Created zone %s (%s)", name, zone["id"], extra={"operation": "create zone"})
        return zone

    # --- DNS records ---

    def list_dns_records(
        self, zone_id: str, record_type: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"type": record_type} if record_type else {}
        return [
            _record(r)
            for r in self._paged(
                f"/zones/{zone_id}/dns_records", "list dns records", params, RECORDS_PER_PAGE
            )
        ]

    def create_dns_record(
        self,
        zone_id: str,
        record_type: str,
        name: str,
        content: str,
        ttl: int = 1,
        proxied: bool = False,
    ) -> dict[str, Any]:
        """Create a DNS record.

        Args:
            zone_id: Zone identifier.
            record_type: ``A``, ``AAAA``, ``CNAME``, …
            name: Record name, relative or fully qualified.
            content: Record value.
            ttl: Seconds, ``1`` for automatic.
            proxied: Route traffic through Cloudflare.

        Returns:
            The created record.
        """
        data = self._request(
            "POST",
            f"/zones/{zone_id}/dns_records",
            "create dns record",
            json={
                "type": record_type,
                "name": name,
                "content": content,
                "ttl": ttl,
                "proxied": proxied,
            },
        )
        record = _record(data["result"])
        log.info(
            "Created DNS record %s %s",
            record_type,
            name,
            extra={"operation": "create dns record", "item": record["id"]},
        )
        return record

    def update_dns_record(
        self,
        zone_id: str,
        record_id: str,
        content: str | None = None,
        ttl: int | None = None,
        proxied: bool | None = None,
    ) -> dict[str, Any]:
        """Patch only the supplied fields of a DNS record."""
        body = {
            k: v
            for k, v in {"content": content, "ttl": ttl, "proxied": proxied}.items()
            if v is not None
        }
        if not body:
            raise ClassifiedError(
                ErrorCategory.VALIDATION,
                "at least one of content, ttl or proxied must be given",
                operation="update dns record",
            )
        data = self._request(
            "PATCH", f"/zones/{zone_id}/dns_records/{record_id}", "update dns record", json=body
        )
        return _record(data["result"])

    def delete_dns_record(self, zone_id: str, record_id: str) -> None:
        self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}", "delete dns record")
        log.info("Deleted DNS record %s", record_id, extra={"operation": "delete dns record"})

    # --- Cache ---

    def purge_cache(
        self,
        zone_id: str,
        *,
        everything: bool = False,
        files: list[str] | None = None,
        prefixes: list[str] | None = None,
        tags: list[str] | None = None,
        hosts: list[str] | None = None,
    ) -> dict[str, Any]:
        """Purge cached content using exactly one purge mode.

        Returns:
            Dict with ``id``, ``purge_type`` and ``item_count``.

        Raises:
            ClassifiedError: ``VALIDATION`` unless exactly one mode is given.
        """
        modes: dict[str, list[str]] = {
            "files": files or [],
            "prefixes": prefixes or [],
            "tags": tags or [],
            "hosts": hosts or [],
        }
        selected = [k for k, v in modes.items() if v]
        if everything:
            selected.append("everything")
        if len(selected) != 1:
            raise ClassifiedError(
                ErrorCategory.VALIDATION,
                "exactly one purge mode must be specified "
                "(everything, files, prefixes, tags or hosts)",
                operation="purge cache",
            )

        purge_type = selected[0]
        body: dict[str, Any] = (
            {"purge_everything": True} if everything else {purge_type: modes[purge_type]}
        )
        data = self._request("POST", f"/zones/{zone_id}/purge_cache", "purge cache", json=body)
        log.info("Purged cache (%s)", purge_type, extra={"operation": "purge cache"})
        return {
            "id": (data.get("result") or {}).get("id", ""),
            "purge_type": purge_type,
            "item_count": 0 if everything else len(modes[purge_type]),
        }
