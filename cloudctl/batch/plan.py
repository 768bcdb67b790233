"""
Execution plans and the YAML plan-file loaders.

An :class:`ExecutionPlan` is an ordered list of groups, each an ordered list
of items. Plan files are validated with pydantic models before conversion;
the coordinator itself only checks that group and item keys are present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Literal, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cloudctl.base.exceptions import PlanError

CERTIFICATES_GROUP = "certificates"
DISTRIBUTIONS_GROUP = "distributions"


# ── Plan types ────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ItemSpec:
    """One resource to create.

    Attributes:
        key: Identifies the item in results (e.g. ``"A www"``).
        payload: Provider-specific request model.
        description: Short text for progress messages.
        idempotency_token: Caller-supplied token; one is generated when the
            provisioner requires a token and this is ``None``.
    """

    key: str
    payload: Any = None
    description: str = ""
    idempotency_token: str | None = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("item key must not be empty")


@dataclass(frozen=True)
class GroupSpec:
    key: str
    items: tuple[ItemSpec, ...] = ()

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("group key must not be empty")
        object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class ExecutionPlan:
    groups: tuple[GroupSpec, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "groups", tuple(self.groups))

    @classmethod
    def flat(cls, group_key: str, items: list[ItemSpec]) -> ExecutionPlan:
        """Plan with a single group, for providers without a grouping level."""
        return cls((GroupSpec(group_key, tuple(items)),))

    @property
    def total_items(self) -> int:
        return sum(len(g.items) for g in self.groups)


# ── DNS records ───────────────────────────────────────────────────────
class DNSRecordEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["A", "AAAA", "CNAME"]
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    ttl: int = Field(default=1, ge=0, description="0 or 1 means automatic")
    proxied: bool = False

    @field_validator("ttl")
    @classmethod
    def automatic_ttl(cls, value: int) -> int:
        return value or 1


class DNSZoneEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    zone: str = Field(min_length=1)
    records: list[DNSRecordEntry] = Field(min_length=1)


class DNSPlanFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    zones: list[DNSZoneEntry] = Field(min_length=1)


# ── Certificates ──────────────────────────────────────────────────────
class CertificateEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    domain: str = Field(min_length=1)
    sans: list[str] = Field(default_factory=list, alias="san")
    idempotency_token: str | None = Field(default=None, pattern=r"^\w{1,32}$")


class CertificatePlanFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    certificates: list[CertificateEntry] = Field(min_length=1)


# ── CloudFront distributions ──────────────────────────────────────────
class OriginEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    domain: str = Field(min_length=1)


class BehaviorEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    priority: int = Field(ge=1)
    path_pattern: str = Field(min_length=1)
    viewer_protocol_policy: Literal["redirect-to-https", "allow-all", "https-only"]
    cache_policy: str = Field(min_length=1)
    origin_request_policy: str = Field(min_length=1)
    response_headers_policy: str = Field(min_length=1)

    @property
    def is_default(self) -> bool:
        return self.priority == 1 and self.path_pattern == "*"


class DistributionEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    aliases: list[str] = Field(min_length=1)
    certificate_arn: str = Field(min_length=1)
    waf_arn: str | None = None
    origin: OriginEntry
    behaviors: list[BehaviorEntry] = Field(min_length=1)

    @model_validator(mode="after")
    def check_default_behavior(self) -> DistributionEntry:
        defaults = [b for b in self.behaviors if b.is_default]
        if len(defaults) != 1:
            raise ValueError(
                "exactly one default behavior (priority 1, path_pattern '*') is required"
            )
        return self


class DistributionPlanFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    distributions: list[DistributionEntry] = Field(min_length=1)

    @field_validator("distributions")
    @classmethod
    def unique_names(cls, v: list[DistributionEntry]) -> list[DistributionEntry]:
        seen: set[str] = set()
        for entry in v:
            if entry.name in seen:
                raise ValueError(f"duplicate distribution name '{entry.name}'")
            seen.add(entry.name)
        return v


# ── CloudFront invalidations ──────────────────────────────────────────
class InvalidationEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    distribution_id: str = Field(min_length=1)
    paths: list[str] = Field(min_length=1)
    caller_reference: str | None = None

    @field_validator("paths")
    @classmethod
    def absolute_paths(cls, v: list[str]) -> list[str]:
        for path in v:
            if not path.startswith("/"):
                raise ValueError(f"invalidation path must start with '/': {path}")
        return v


class InvalidationPlanFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    invalidations: list[InvalidationEntry] = Field(min_length=1)


# ── Loaders ───────────────────────────────────────────────────────────
M = TypeVar("M", bound=BaseModel)


def _read_plan_file(path: str | Path, model: type[M]) -> M:
    plan_path = Path(path)
    try:
        text = plan_path.read_text(encoding="utf-8")
    except OSError as e:
        raise PlanError(f"Failed to read plan file {plan_path}: {e}") from e
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise PlanError(f"Failed to parse plan file {plan_path}: {e}") from e
    if not isinstance(raw, dict):
        raise PlanError(f"Plan file {plan_path} must contain a mapping")
    try:
        return model(**raw)
    except ValidationError as e:
        raise PlanError(f"Invalid plan file {plan_path}: {e}") from e


def dns_plan(doc: DNSPlanFile) -> ExecutionPlan:
    return ExecutionPlan(
        tuple(
            GroupSpec(
                zone.zone,
                tuple(
                    ItemSpec(
                        key=f"{r.type} {r.name}",
                        payload=r,
                        description=f"{r.type} {r.name} -> {r.content}",
                    )
                    for r in zone.records
                ),
            )
            for zone in doc.zones
        )
    )


def certificate_plan(doc: CertificatePlanFile) -> ExecutionPlan:
    return ExecutionPlan.flat(
        CERTIFICATES_GROUP,
        [
            ItemSpec(
                key=c.domain,
                payload=c,
                description=c.domain,
                idempotency_token=c.idempotency_token,
            )
            for c in doc.certificates
        ],
    )


def distribution_plan(doc: DistributionPlanFile) -> ExecutionPlan:
    return ExecutionPlan.flat(
        DISTRIBUTIONS_GROUP,
        [
            ItemSpec(key=d.name, payload=d, description=f"{d.name} -> {d.origin.domain}")
            for d in doc.distributions
        ],
    )


def invalidation_plan(doc: InvalidationPlanFile) -> ExecutionPlan:
    """Group invalidations by distribution, keeping first-seen order."""
    grouped: dict[str, list[ItemSpec]] = {}
    for entry in doc.invalidations:
        key = ",".join(entry.paths)
        grouped.setdefault(entry.distribution_id, []).append(
            ItemSpec(
                key=key,
                payload=entry,
                description=key,
                idempotency_token=entry.caller_reference,
            )
        )
    return ExecutionPlan(tuple(GroupSpec(dist, tuple(items)) for dist, items in grouped.items()))


def load_dns_plan(path: str | Path) -> ExecutionPlan:
    return dns_plan(_read_plan_file(path, DNSPlanFile))


def load_certificate_plan(path: str | Path) -> ExecutionPlan:
    return certificate_plan(_read_plan_file(path, CertificatePlanFile))


def load_distribution_plan(path: str | Path) -> ExecutionPlan:
    return distribution_plan(_read_plan_file(path, DistributionPlanFile))


def load_invalidation_plan(path: str | Path) -> ExecutionPlan:
    return invalidation_plan(_read_plan_file(path, InvalidationPlanFile))


PLAN_LOADERS: dict[str, Callable[[str | Path], ExecutionPlan]] = {
    "dns": load_dns_plan,
    "certificates": load_certificate_plan,
    "distributions": load_distribution_plan,
    "invalidations": load_invalidation_plan,
}


# ── ACM validation records ────────────────────────────────────────────
VALIDATION_PLAN_HEADER = (
    "# Cloudflare DNS records for ACM certificate validation.\n"
    "# Apply with: cloudctl cf dns batch {path}\n"
)


def validation_dns_plan(records: Iterable[dict[str, Any]]) -> DNSPlanFile | None:
    """Build a DNS plan from ACM DNS validation records.

    Each record name is split into its leading validation label, which
    becomes the record name, and the rest, which becomes the zone. Trailing
    dots are dropped, records are never proxied and duplicates shared by
    several certificates appear once, in first-seen order.

    Returns:
        The plan, or ``None`` when no record could be placed in a zone.
    """
    zones: dict[str, dict[tuple[str, str, str], DNSRecordEntry]] = {}
    for record in records:
        label, _, zone = record["name"].rstrip(".").partition(".")
        if not label or not zone:
            continue
        entry = DNSRecordEntry(
            type=record["type"],
            name=label,
            content=record["value"].rstrip("."),
            proxied=False,
        )
        zones.setdefault(zone, {}).setdefault((entry.name, entry.type, entry.content), entry)
    if not zones:
        return None
    return DNSPlanFile(
        zones=[DNSZoneEntry(zone=zone, records=list(entries.values())) for zone, entries in zones.items()]
    )


def save_validation_dns_plan(doc: DNSPlanFile, path: str | Path) -> None:
    """Write *doc* as a plan file accepted by :func:`load_dns_plan`.

    Raises:
        PlanError: If the file cannot be written.
    """
    plan_path = Path(path)
    data = {
        "zones": [
            {
                "zone": zone.zone,
                "records": [
                    {"type": r.type, "name": r.name, "content": r.content, "proxied": r.proxied}
                    for r in zone.records
                ],
            }
            for zone in doc.zones
        ]
    }
    text = VALIDATION_PLAN_HEADER.format(path=plan_path) + yaml.safe_dump(data, sort_keys=False)
    try:
        plan_path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise PlanError(f"Failed to write plan file {plan_path}: {e}") from e
