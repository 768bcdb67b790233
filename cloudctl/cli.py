"""cloudctl CLI: Cloudflare and AWS operations from the command line.

Usage examples::

    cloudctl cf zone list
    cloudctl cf dns create example.com --type A --name www --content 1.2.3.4
    cloudctl cf dns batch records.yaml --concurrency 4
    cloudctl aws cdn invalidate E123ABC /index.html /static/*
    cloudctl aws cert batch-request certificates.yaml --output-config validation.yaml
    cloudctl config show
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable

import yaml

from cloudctl.aws import CertificateManager, CloudFront
from cloudctl.base.async_support import async_wrap
from cloudctl.base.config import DEFAULT_CONFIG_PATH, Config, LogConfig, load_config
from cloudctl.base.exceptions import CloudctlError, exit_code_for, format_error
from cloudctl.base.logger import configure_logging, new_request_id, ContextAdapter
from cloudctl.base.retry import CancelToken, execute
from cloudctl.batch.coordinator import MAX_CONCURRENCY, run_batch
from cloudctl.batch.plan import ExecutionPlan, save_validation_dns_plan, validation_dns_plan
from cloudctl.batch.report import BatchReport
from cloudctl.cloudflare import CloudflareClient
from cloudctl.factory import load_plan, provider_for, provisioner_factory
from cloudctl.output import OutputFormat, render, render_plan, render_profiles, render_report


@dataclass
class _Context:
    config: Config
    fmt: OutputFormat
    profile: str | None
    log: logging.LoggerAdapter
    config_path: str | None = None


def _call(ctx: _Context, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run one provider call through the retry executor, raising its error."""
    wrapped = async_wrap(fn)
    result = asyncio.run(
        execute(
            operation,
            ctx.config.api.retry,
            lambda: wrapped(*args, **kwargs),
            log=ctx.log,  # type: ignore[arg-type]
        )
    )
    if result.error is not None:
        raise result.error
    return result.value


def _emit(ctx: _Context, data: Any) -> int:
    print(render(data, ctx.fmt))
    return 0


def _cloudflare(ctx: _Context) -> CloudflareClient:
    return CloudflareClient(ctx.config.cloudflare_profile(ctx.profile), timeout=ctx.config.api.timeout)


def _zone_id(ctx: _Context, client: CloudflareClient, zone: str) -> str:
    return _call(ctx, f"find zone {zone}", client.get_zone_by_name, zone)["id"]  # type: ignore[no-any-return]


# ── Cloudflare ────────────────────────────────────────────────────────
def _cf_zone_list(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        return _emit(ctx, _call(ctx, "list zones", client.list_zones))


def _cf_zone_create(ns: argparse.Namespace, ctx: _Context) -> int:
    domains = [d.strip() for arg in ns.domains for d in arg.split(",") if d.strip()]
    if not domains:
        raise ValueError("at least one domain is required")
    zones: list[dict[str, Any]] = []
    failed = 0
    with _cloudflare(ctx) as client:
        account_id = _call(ctx, "get account id", client.account_id)
        for domain in domains:
            try:
                zones.append(_call(ctx, f"create zone {domain}", client.create_zone, domain, account_id))
            except CloudctlError as e:
                failed += 1
                print(format_error(e), file=sys.stderr)
    _emit(ctx, zones)
    return 1 if failed else 0


def _cf_zone_get(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        return _emit(ctx, _call(ctx, f"find zone {ns.zone}", client.get_zone_by_name, ns.zone))


def _cf_dns_list(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        zone_id = _zone_id(ctx, client, ns.zone)
        return _emit(ctx, _call(ctx, "list dns records", client.list_dns_records, zone_id, ns.type))


def _cf_dns_create(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        zone_id = _zone_id(ctx, client, ns.zone)
        record = _call(
            ctx,
            f"create dns record {ns.type} {ns.name}",
            client.create_dns_record,
            zone_id,
            ns.type,
            ns.name,
            ns.content,
            ttl=ns.ttl,
            proxied=ns.proxied,
        )
        return _emit(ctx, record)


def _cf_dns_update(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        zone_id = _zone_id(ctx, client, ns.zone)
        record = _call(
            ctx,
            f"update dns record {ns.record_id}",
            client.update_dns_record,
            zone_id,
            ns.record_id,
            content=ns.content,
            ttl=ns.ttl,
            proxied=ns.proxied,
        )
        return _emit(ctx, record)


def _cf_dns_delete(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        zone_id = _zone_id(ctx, client, ns.zone)
        _call(ctx, f"delete dns record {ns.record_id}", client.delete_dns_record, zone_id, ns.record_id)
        return _emit(ctx, None)


def _cf_cache_purge(ns: argparse.Namespace, ctx: _Context) -> int:
    with _cloudflare(ctx) as client:
        zone_id = _zone_id(ctx, client, ns.zone)
        result = _call(
            ctx,
            f"purge cache {ns.zone}",
            client.purge_cache,
            zone_id,
            everything=ns.everything,
            files=ns.files,
            prefixes=ns.prefixes,
            tags=ns.tags,
            hosts=ns.hosts,
        )
        return _emit(ctx, result)


# ── AWS ───────────────────────────────────────────────────────────────
def _aws_cdn_list(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    return _emit(ctx, _call(ctx, "list distributions", cdn.list_distributions))


def _aws_cdn_get(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    return _emit(ctx, _call(ctx, f"get distribution {ns.id}", cdn.get_distribution, ns.id))


def _aws_cdn_create(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    aliases = [a.strip() for a in (ns.aliases or "").split(",") if a.strip()]
    # Fixed before the first attempt so retries reuse it.
    reference = f"cloudctl-{new_request_id()}"
    result = _call(
        ctx,
        f"create distribution for {ns.origin}",
        cdn.create_origin_distribution,
        ns.origin,
        aliases=aliases,
        comment=ns.comment,
        certificate_arn=ns.certificate_arn,
        price_class=ns.price_class,
        default_root_object=ns.default_root_object,
        caller_reference=reference,
    )
    return _emit(ctx, result)


def _aws_cdn_update(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    result = _call(
        ctx,
        f"update distribution {ns.id}",
        cdn.update_distribution,
        ns.id,
        comment=ns.comment,
        enabled=ns.enabled,
    )
    return _emit(ctx, result)


def _aws_cdn_invalidate(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    # Fixed before the first attempt so retries reuse it.
    reference = ns.caller_reference or f"cloudctl-{new_request_id()}"
    result = _call(
        ctx,
        f"create invalidation for {ns.id}",
        cdn.create_invalidation,
        ns.id,
        ns.paths,
        caller_reference=reference,
    )
    return _emit(ctx, result)


def _aws_cdn_invalidation_status(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    return _emit(
        ctx,
        _call(ctx, f"get invalidation {ns.invalidation_id}", cdn.get_invalidation, ns.id, ns.invalidation_id),
    )


def _aws_cdn_invalidations(ns: argparse.Namespace, ctx: _Context) -> int:
    cdn = CloudFront(ctx.config.aws_profile(ctx.profile))
    return _emit(ctx, _call(ctx, f"list invalidations for {ns.id}", cdn.list_invalidations, ns.id))


def _aws_cert_list(ns: argparse.Namespace, ctx: _Context) -> int:
    acm = CertificateManager(ctx.config.aws_profile(ctx.profile))
    return _emit(ctx, _call(ctx, "list certificates", acm.list_certificates))


def _aws_cert_get(ns: argparse.Namespace, ctx: _Context) -> int:
    acm = CertificateManager(ctx.config.aws_profile(ctx.profile))
    return _emit(ctx, _call(ctx, f"get certificate {ns.arn}", acm.get_certificate, ns.arn))


def _aws_cert_request(ns: argparse.Namespace, ctx: _Context) -> int:
    acm = CertificateManager(ctx.config.aws_profile(ctx.profile))
    token = new_request_id()
    cert = _call(
        ctx,
        f"request certificate {ns.domain}",
        acm.request_certificate,
        ns.domain,
        ns.san,
        idempotency_token=token,
        wait_for_validation=not ns.no_wait,
    )
    return _emit(ctx, cert)


# ── Config ────────────────────────────────────────────────────────────
def _config_validate(ns: argparse.Namespace, ctx: _Context) -> int:
    profiles = ctx.config.list_profiles()
    for p in profiles:
        if not p["has_credentials"]:
            print(f"Warning: {p['provider']} profile '{p['name']}' has no credentials", file=sys.stderr)
    source = ctx.config_path or (str(DEFAULT_CONFIG_PATH) if DEFAULT_CONFIG_PATH.exists() else "<defaults>")
    return _emit(ctx, {"valid": True, "source": source, "profiles": len(profiles)})


def _config_show(ns: argparse.Namespace, ctx: _Context) -> int:
    data = ctx.config.masked(ctx.profile)
    if ctx.fmt == "json":
        return _emit(ctx, data)
    print(yaml.safe_dump(data, sort_keys=False).rstrip())
    return 0


def _config_list_profiles(ns: argparse.Namespace, ctx: _Context) -> int:
    print(render_profiles(ctx.config.list_profiles(), ctx.fmt))
    return 0


def _check_distribution_certificates(ns: argparse.Namespace, ctx: _Context, plan: ExecutionPlan) -> None:
    arns = sorted({item.payload.certificate_arn for g in plan.groups for item in g.items})
    acm = CertificateManager(ctx.config.aws_profile(ctx.profile))
    _call(ctx, "validate certificates", acm.validate_certificates, arns)


def _write_validation_plan(ns: argparse.Namespace, ctx: _Context, report: BatchReport) -> None:
    """Write a Cloudflare DNS plan with the validation records of every requested certificate."""
    if not ns.output_config:
        return
    arns = [
        r.resource_id
        for g in report.group_results
        for r in g.item_results
        if r.succeeded and r.resource_id
    ]
    acm = CertificateManager(ctx.config.aws_profile(ctx.profile))
    records: list[dict[str, Any]] = []
    for arn in arns:
        try:
            cert = _call(ctx, f"get validation records {arn}", acm.wait_for_validation_records, arn)
        except CloudctlError as e:
            print(f"Warning: {e}", file=sys.stderr)
            continue
        if cert is None:
            print(f"Warning: no validation records for {arn} yet", file=sys.stderr)
            continue
        records.extend(cert["validation_records"])

    doc = validation_dns_plan(records)
    if doc is None:
        print("Warning: no validation records available, DNS plan not written", file=sys.stderr)
        return
    try:
        save_validation_dns_plan(doc, ns.output_config)
    except CloudctlError as e:
        print(f"Warning: {e}", file=sys.stderr)
        return
    print(
        f"DNS validation plan written to {ns.output_config}, "
        f"apply it with: cloudctl cf dns batch {ns.output_config}",
        file=sys.stderr,
    )


# ── Batch ─────────────────────────────────────────────────────────────
_PRE_CHECKS: dict[str, Callable[[argparse.Namespace, _Context, ExecutionPlan], None]] = {
    "distributions": _check_distribution_certificates,
}

_POST_RUN: dict[str, Callable[[argparse.Namespace, _Context, BatchReport], None]] = {
    "certificates": _write_validation_plan,
}


def _batch(kind: str) -> Callable[[argparse.Namespace, _Context], int]:
    def handler(ns: argparse.Namespace, ctx: _Context) -> int:
        plan = load_plan(kind, ns.file)  # type: ignore[arg-type]
        if ns.dry_run:
            print(render_plan(plan, ctx.fmt))
            return 0
        pre_check = _PRE_CHECKS.get(kind)
        if pre_check is not None:
            pre_check(ns, ctx, plan)
        provisioner = provisioner_factory(kind, ctx.config, ctx.profile)  # type: ignore[call-overload]
        ctx.log.info(
            "Running %s batch from %s",
            kind,
            ns.file,
            extra={"provider": provider_for(kind)},  # type: ignore[arg-type]
        )

        def progress(message: str) -> None:
            print(message, file=sys.stderr)

        async def _run() -> Any:
            cancel = CancelToken(ns.deadline) if ns.deadline else None
            return await run_batch(
                plan,
                provisioner,
                ctx.config.api.retry,
                concurrency=ns.concurrency,
                progress=None if ns.quiet else progress,
                cancel=cancel,
            )

        try:
            report = asyncio.run(_run())
        finally:
            provisioner.close()
        print(render_report(report, ctx.fmt))
        post_run = _POST_RUN.get(kind)
        if post_run is not None:
            post_run(ns, ctx, report)
        return 1 if report.has_failures else 0

    return handler


def _add_batch_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", help="YAML plan file")
    p.add_argument(
        "--concurrency", "-n",
        type=int,
        default=1,
        help=f"Groups processed in parallel (1 = sequential, max {MAX_CONCURRENCY})",
    )
    p.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop retrying and skip remaining items after this many seconds",
    )
    p.add_argument("--quiet", "-q", action="store_true", help="Suppress progress messages")
    p.add_argument("--dry-run", action="store_true", help="Preview the plan without creating anything")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``cloudctl`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="cloudctl",
        description="Manage Cloudflare and AWS CDN resources",
    )
    parser.add_argument("--config", "-c", type=str, default=None, help="Config file path")
    parser.add_argument("--profile", "-p", type=str, default=None, help="Provider profile name")
    parser.add_argument(
        "--output", "-o",
        choices=["text", "json"],
        default=None,
        help="Output format (default from config)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "warning", "error"],
        default=None,
        help="Log level (default from config)",
    )
    providers = parser.add_subparsers(dest="provider", required=True)

    # cf
    cf = providers.add_parser("cf", help="Cloudflare").add_subparsers(dest="resource", required=True)

    zone = cf.add_parser("zone", help="Zones").add_subparsers(dest="action", required=True)
    zone.add_parser("list", help="List zones").set_defaults(func=_cf_zone_list)
    p = zone.add_parser("create", help="Create zones")
    p.add_argument("domains", nargs="+", help="Domain names, space or comma separated")
    p.set_defaults(func=_cf_zone_create)
    p = zone.add_parser("get", help="Show a zone")
    p.add_argument("zone")
    p.set_defaults(func=_cf_zone_get)

    dns = cf.add_parser("dns", help="DNS records").add_subparsers(dest="action", required=True)
    p = dns.add_parser("list", help="List records of a zone")
    p.add_argument("zone")
    p.add_argument("--type", default=None, help="Filter by record type")
    p.set_defaults(func=_cf_dns_list)
    p = dns.add_parser("create", help="Create a record")
    p.add_argument("zone")
    p.add_argument("--type", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--content", required=True)
    p.add_argument("--ttl", type=int, default=1, help="TTL in seconds, 1 = automatic")
    p.add_argument("--proxied", action="store_true")
    p.set_defaults(func=_cf_dns_create)
    p = dns.add_parser("update", help="Update a record")
    p.add_argument("zone")
    p.add_argument("record_id")
    p.add_argument("--content", default=None)
    p.add_argument("--ttl", type=int, default=None)
    p.add_argument("--proxied", action=argparse.BooleanOptionalAction, default=None)
    p.set_defaults(func=_cf_dns_update)
    p = dns.add_parser("delete", help="Delete a record")
    p.add_argument("zone")
    p.add_argument("record_id")
    p.set_defaults(func=_cf_dns_delete)
    p = dns.add_parser("batch", help="Create records from a plan file")
    _add_batch_args(p)
    p.set_defaults(func=_batch("dns"))

    cache = cf.add_parser("cache", help="Cache").add_subparsers(dest="action", required=True)
    p = cache.add_parser("purge", help="Purge cached content")
    p.add_argument("zone")
    mode = p.add_mutually_exclusive_group(required=True)
    mode.add_argument("--everything", action="store_true")
    mode.add_argument("--files", nargs="+")
    mode.add_argument("--prefixes", nargs="+")
    mode.add_argument("--tags", nargs="+")
    mode.add_argument("--hosts", nargs="+")
    p.set_defaults(func=_cf_cache_purge)

    # aws
    aws = providers.add_parser("aws", help="AWS").add_subparsers(dest="resource", required=True)

    cdn = aws.add_parser("cdn", help="CloudFront").add_subparsers(dest="action", required=True)
    cdn.add_parser("list", help="List distributions").set_defaults(func=_aws_cdn_list)
    p = cdn.add_parser("get", help="Show a distribution")
    p.add_argument("id")
    p.set_defaults(func=_aws_cdn_get)
    p = cdn.add_parser("create", help="Create a distribution for one origin")
    p.add_argument("--origin", required=True, help="Origin domain name")
    p.add_argument("--aliases", default=None, help="Comma separated alternate domain names")
    p.add_argument("--comment", default="")
    p.add_argument("--certificate-arn", default=None, help="ACM certificate for the aliases")
    p.add_argument(
        "--price-class",
        choices=["PriceClass_100", "PriceClass_200", "PriceClass_All"],
        default="PriceClass_100",
    )
    p.add_argument("--default-root-object", default="")
    p.set_defaults(func=_aws_cdn_create)
    p = cdn.add_parser("update", help="Update a distribution")
    p.add_argument("id")
    p.add_argument("--comment", default=None)
    state = p.add_mutually_exclusive_group()
    state.add_argument("--enabled", dest="enabled", action="store_const", const=True, default=None)
    state.add_argument("--disabled", dest="enabled", action="store_const", const=False)
    p.set_defaults(func=_aws_cdn_update)
    p = cdn.add_parser("invalidate", help="Invalidate cached paths")
    p.add_argument("id")
    p.add_argument("paths", nargs="+")
    p.add_argument("--caller-reference", default=None)
    p.set_defaults(func=_aws_cdn_invalidate)
    p = cdn.add_parser("invalidation-status", help="Show an invalidation")
    p.add_argument("id")
    p.add_argument("invalidation_id")
    p.set_defaults(func=_aws_cdn_invalidation_status)
    p = cdn.add_parser("invalidations", help="List invalidations of a distribution")
    p.add_argument("id")
    p.set_defaults(func=_aws_cdn_invalidations)
    p = cdn.add_parser("batch-invalidate", help="Create invalidations from a plan file")
    _add_batch_args(p)
    p.set_defaults(func=_batch("invalidations"))
    p = cdn.add_parser("batch-create", help="Create distributions from a plan file")
    _add_batch_args(p)
    p.set_defaults(func=_batch("distributions"))

    cert = aws.add_parser("cert", help="ACM certificates").add_subparsers(dest="action", required=True)
    cert.add_parser("list", help="List certificates").set_defaults(func=_aws_cert_list)
    p = cert.add_parser("get", help="Show a certificate")
    p.add_argument("arn")
    p.set_defaults(func=_aws_cert_get)
    p = cert.add_parser("request", help="Request a certificate")
    p.add_argument("domain")
    p.add_argument("--san", nargs="*", default=[], help="Subject alternative names")
    p.add_argument("--no-wait", action="store_true", help="Do not wait for validation records")
    p.set_defaults(func=_aws_cert_request)
    p = cert.add_parser("batch-request", help="Request certificates from a plan file")
    _add_batch_args(p)
    p.add_argument(
        "--output-config",
        default=None,
        metavar="FILE",
        help="Write a Cloudflare DNS plan with the validation records to FILE",
    )
    p.set_defaults(func=_batch("certificates"))

    # config
    config = providers.add_parser("config", help="Configuration").add_subparsers(
        dest="action", required=True
    )
    config.add_parser("validate", help="Validate the config file").set_defaults(func=_config_validate)
    config.add_parser("show", help="Show the config with masked credentials").set_defaults(
        func=_config_show
    )
    config.add_parser("list-profiles", help="List provider profiles").set_defaults(
        func=_config_list_profiles
    )

    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, execute the command and return the exit code."""
    ns = _build_parser().parse_args(argv)

    try:
        config = load_config(ns.config)
    except CloudctlError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_config = config.log
    if ns.log_level:
        log_config = LogConfig(**{**log_config.model_dump(), "level": ns.log_level})
    logger = configure_logging(log_config)
    ctx = _Context(
        config=config,
        fmt=ns.output or config.output.format,
        profile=ns.profile,
        log=ContextAdapter(logger, request_id=new_request_id()),
        config_path=ns.config,
    )

    try:
        return int(ns.func(ns, ctx))
    except CloudctlError as e:
        print(format_error(e), file=sys.stderr)
        return exit_code_for(e)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
