"""
Presentation of command results and batch reports.

Two formats: ``json`` (machine-readable, ``default=str`` for datetimes) and
``text`` (one ``key: value`` line per field, or a readable summary for
batch reports).
"""

from __future__ import annotations

import json
from typing import Any, Literal

from cloudctl.batch.plan import ExecutionPlan
from cloudctl.batch.report import BatchReport

OutputFormat = Literal["text", "json"]


def _text_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(_text_value(v) for v in value)
    if isinstance(value, dict):
        return " ".join(f"{k}={_text_value(v)}" for k, v in value.items())
    return "" if value is None else str(value)


def render(data: Any, fmt: OutputFormat = "text") -> str:
    """Render a plain command result.

    Args:
        data: ``None``, a dict, a list of dicts, or any printable value.
        fmt: ``text`` or ``json``.
    """
    if fmt == "json":
        return json.dumps(data, indent=2, default=str)
    if data is None:
        return "OK"
    if isinstance(data, dict):
        return "\n".join(f"{k}: {_text_value(v)}" for k, v in data.items())
    if isinstance(data, list):
        if not data:
            return "(none)"
        return "\n\n".join(render(item, fmt) for item in data)
    return str(data)


def render_report(report: BatchReport, fmt: OutputFormat = "text") -> str:
    """Render a :class:`BatchReport` as JSON or as a text summary."""
    if fmt == "json":
        return json.dumps(report.to_dict(), indent=2, default=str)

    lines: list[str] = []
    for group in report.group_results:
        status = "OK" if group.succeeded else "FAILED"
        lines.append(
            f"[{status}] {group.group_key} "
            f"({group.success_items}/{group.total_items} succeeded)"
        )
        if group.resolution_error is not None:
            err = group.resolution_error
            lines.append(f"    resolution failed [{err.category.value}]: {err.message}")
            continue
        for item in group.item_results:
            if item.succeeded:
                lines.append(f"    ✓ {item.item_key} -> {item.resource_id}")
            else:
                category = item.error.category.value if item.error else "unknown"
                message = item.error.message if item.error else ""
                lines.append(f"    ✗ {item.item_key} [{category}]: {message}")

    lines.append("")
    lines.append(
        f"Groups: {report.success_groups}/{report.total_groups} succeeded, "
        f"{report.failed_groups} failed"
    )
    lines.append(
        f"Items: {report.success_items}/{report.total_items} succeeded, "
        f"{report.failed_items} failed"
    )
    if report.cancelled:
        lines.append("Run was cancelled before completion")
    lines.append(f"Duration: {report.duration.total_seconds():.2f}s")
    return "\n".join(lines)


def render_plan(plan: ExecutionPlan, fmt: OutputFormat = "text") -> str:
    """Render a dry-run preview of *plan*; nothing is created."""
    if fmt == "json":
        return json.dumps(
            {
                "dry_run": True,
                "total_groups": len(plan.groups),
                "total_items": plan.total_items,
                "groups": [
                    {
                        "group_key": group.key,
                        "items": [
                            {
                                "item_key": item.key,
                                "description": item.description,
                                "idempotency_token": item.idempotency_token,
                            }
                            for item in group.items
                        ],
                    }
                    for group in plan.groups
                ],
            },
            indent=2,
        )

    lines = [
        f"Dry run: {len(plan.groups)} groups, {plan.total_items} items (nothing will be created)",
        "",
    ]
    for idx, group in enumerate(plan.groups, start=1):
        lines.append(f"Group {idx}: {group.key} ({len(group.items)} items)")
        for item_idx, item in enumerate(group.items, start=1):
            lines.append(f"  {item_idx}. {item.description or item.key}")
    return "\n".join(lines)


def render_profiles(profiles: list[dict[str, Any]], fmt: OutputFormat = "text") -> str:
    """Render the output of :meth:`~cloudctl.base.config.Config.list_profiles`."""
    if fmt == "json":
        return json.dumps(profiles, indent=2)

    lines: list[str] = []
    for provider, title in (("cloudflare", "Cloudflare profiles:"), ("aws", "AWS profiles:")):
        lines.append(title)
        entries = [p for p in profiles if p["provider"] == provider]
        if not entries:
            lines.append("  (none)")
        for p in entries:
            marks = []
            if p["default"]:
                marks.append("default")
            if not p["has_credentials"]:
                marks.append("missing credentials")
            suffix = f" ({', '.join(marks)})" if marks else ""
            lines.append(f"  {p['name']}{suffix}")
    lines.append("")
    lines.append(f"Total: {len(profiles)} profiles")
    return "\n".join(lines)
