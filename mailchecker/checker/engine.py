"""
Check orchestration engine.

Coordinates the execution of all checks for a single domain or for a batch
of domains. Handles:
- Resolving NS to decide whether the domain exists
- Running MX, SPF, DKIM, MTA-STS, DMARC and TLS-RPT in dependency order
- Running each check with individual error isolation
- Computing the overall status (worst across all checks, N/A excluded)
- Concurrent batch checking via ThreadPoolExecutor
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable

from mailchecker.checker.dkim import check_dkim
from mailchecker.checker.dmarc import check_dmarc
from mailchecker.checker.mta_sts import check_mta_sts
from mailchecker.checker.mx import PROVIDER_DKIM_SELECTORS, check_mx
from mailchecker.checker.resolver import DnsCache, DnsResolver, ResolveOutcome
from mailchecker.checker.spf import check_spf
from mailchecker.checker.tls_rpt import check_tls_rpt
from mailchecker.models import (
    FAIL,
    PASS,
    SECTION_DKIM,
    SECTION_DMARC,
    SECTION_MTA_STS,
    SECTION_MX,
    SECTION_SPF,
    SECTION_TLS_RPT,
    SECTIONS,
    CheckResult,
    DnsSettings,
    DomainCheck,
    Summary,
    normalise_domain,
    worst_status,
)

logger = logging.getLogger(__name__)

REASON_SEPARATOR = " | "

MAX_WORKERS_LIMIT = 32


def check_domain(
    domain: str,
    selectors: list[str] | None = None,
    settings: DnsSettings | None = None,
    resolver: DnsResolver | None = None,
) -> DomainCheck:
    """Run all six checks for *domain* and return the aggregate DomainCheck.

    Args:
        domain: The domain name to check.
        selectors: DKIM selectors to probe; defaults to the configured list.
        settings: DnsSettings; defaults are used when omitted.
        resolver: DnsResolver to use; built from *settings* when omitted.

    Returns:
        The DomainCheck holding every CheckResult and the Summary.
    """
    start_time = time.monotonic()
    now = datetime.now(timezone.utc)
    settings = settings or DnsSettings()
    resolver = resolver or DnsResolver.from_settings(settings)
    hostname = normalise_domain(domain)

    errors: list[str] = []
    results: dict[str, CheckResult] = {}

    # ---- Domain existence (NS) ----
    ns_answer = resolver.resolve_ns(hostname)
    existence = ns_answer.outcome
    if existence is ResolveOutcome.SERVFAIL:
        # Flaky resolvers must not produce a false "domain does not exist";
        # keep probing records as if the domain exists.
        logger.warning("NS lookup for %s failed (%s); assuming domain exists", hostname, ns_answer.error)

    # ---- MX ----
    results[SECTION_MX] = _run_safe_check(
        SECTION_MX, lambda: check_mx(hostname, existence, resolver), errors
    )
    has_mx = bool(results[SECTION_MX].data.get("has_mx", False))
    provider = results[SECTION_MX].data.get("provider")

    # ---- SPF (feeds the mail-flow flag used by DKIM) ----
    results[SECTION_SPF] = _run_safe_check(
        SECTION_SPF,
        lambda: check_spf(hostname, existence, resolver, max_depth=settings.spf_max_depth),
        errors,
    )
    has_spf_mechanisms = bool(results[SECTION_SPF].data.get("has_mechanisms", False))

    # ---- DKIM ----
    active_selectors = _dkim_selectors(selectors, settings, provider)
    results[SECTION_DKIM] = _run_safe_check(
        SECTION_DKIM,
        lambda: check_dkim(
            hostname, active_selectors, existence, has_mx, has_spf_mechanisms, resolver
        ),
        errors,
    )

    # ---- MTA-STS ----
    results[SECTION_MTA_STS] = _run_safe_check(
        SECTION_MTA_STS,
        lambda: check_mta_sts(
            hostname, existence, has_mx, resolver, fetch_timeout=settings.policy_fetch_timeout
        ),
        errors,
    )

    # ---- DMARC ----
    results[SECTION_DMARC] = _run_safe_check(
        SECTION_DMARC, lambda: check_dmarc(hostname, existence, resolver), errors
    )

    # ---- TLS-RPT ----
    results[SECTION_TLS_RPT] = _run_safe_check(
        SECTION_TLS_RPT, lambda: check_tls_rpt(hostname, existence, has_mx, resolver), errors
    )

    summary = build_summary(hostname, existence, results)
    elapsed_ms = int((time.monotonic() - start_time) * 1000)

    logger.info(
        "Check completed for %s: status=%s, elapsed=%dms",
        hostname, summary.status, elapsed_ms,
    )
    return DomainCheck(
        domain=hostname,
        results=MappingProxyType(results),
        summary=summary,
        checked_at=now,
        execution_time_ms=elapsed_ms,
        errors=tuple(errors),
    )


def build_summary(
    domain: str,
    existence: ResolveOutcome,
    results: dict[str, CheckResult],
) -> Summary:
    """Derive the Summary (overall status, reason, projections) from *results*."""
    ordered = [results[s] for s in SECTIONS if s in results]
    status = worst_status([r.status for r in ordered])
    reason = REASON_SEPARATOR.join(r.reason for r in ordered)

    if existence is ResolveOutcome.NXDOMAIN:
        domain_exists: bool | None = False
    elif existence is ResolveOutcome.SERVFAIL:
        domain_exists = None
    else:
        domain_exists = True

    def _data(section: str, key: str, default: Any = None) -> Any:
        result = results.get(section)
        return result.data.get(key, default) if result is not None else default

    spf = results.get(SECTION_SPF)
    return Summary(
        domain=domain,
        status=status,
        reason=reason,
        section_statuses={r.section: r.status for r in ordered},
        section_reasons={r.section: r.reason for r in ordered},
        domain_exists=domain_exists,
        has_mx=bool(_data(SECTION_MX, "has_mx", False)),
        mx_provider=_data(SECTION_MX, "provider"),
        spf_healthy=spf is not None and spf.status == PASS,
        spf_lookups=_data(SECTION_SPF, "lookup_count"),
        dkim_selectors=tuple(_data(SECTION_DKIM, "valid_selectors", ()) or ()),
        dmarc_policy=_data(SECTION_DMARC, "policy"),
        dmarc_enforced=bool(_data(SECTION_DMARC, "enforced", False)),
        mta_sts_mode=_data(SECTION_MTA_STS, "policy_mode"),
    )


def check_domains(
    domains: list[str],
    selectors: list[str] | None = None,
    settings: DnsSettings | None = None,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
) -> list[DomainCheck]:
    """Check many domains in parallel, each domain's checks in order.

    Domains are de-duplicated by their normalised name.  A shared DnsCache
    scoped to this call avoids re-resolving common include targets.  Setting
    *cancel_event* stops new domains from starting; domains already running
    finish.

    Returns:
        DomainCheck objects in input order, omitting cancelled or crashed
        domains.
    """
    settings = settings or DnsSettings()
    hostnames: list[str] = []
    for domain in domains:
        hostname = normalise_domain(domain)
        if hostname and hostname not in hostnames:
            hostnames.append(hostname)

    workers = max_workers if max_workers is not None else settings.check_concurrency
    workers = max(1, min(int(workers), MAX_WORKERS_LIMIT))
    resolver = DnsResolver.from_settings(settings, cache=DnsCache())

    logger.info("Starting batch check for %d domains (concurrency=%d)", len(hostnames), workers)

    if workers == 1 or len(hostnames) <= 1:
        checks = _run_all_sequential(hostnames, selectors, settings, resolver, cancel_event)
    else:
        checks = _run_all_concurrent(hostnames, selectors, settings, resolver, workers, cancel_event)

    logger.info("Batch check complete: %d/%d domains checked", len(checks), len(hostnames))
    return checks


def _check_one(
    hostname: str,
    selectors: list[str] | None,
    settings: DnsSettings,
    resolver: DnsResolver,
    cancel_event: threading.Event | None,
) -> DomainCheck | None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Batch cancelled; skipping %s", hostname)
        return None
    try:
        return check_domain(hostname, selectors, settings, resolver)
    except Exception as exc:
        logger.exception("Batch check failed for domain %s: %s", hostname, exc)
        return None


def _run_all_sequential(
    hostnames: list[str],
    selectors: list[str] | None,
    settings: DnsSettings,
    resolver: DnsResolver,
    cancel_event: threading.Event | None,
) -> list[DomainCheck]:
    """Check domains one at a time."""
    checks: list[DomainCheck] = []
    for hostname in hostnames:
        check = _check_one(hostname, selectors, settings, resolver, cancel_event)
        if check is not None:
            checks.append(check)
    return checks


def _run_all_concurrent(
    hostnames: list[str],
    selectors: list[str] | None,
    settings: DnsSettings,
    resolver: DnsResolver,
    max_workers: int,
    cancel_event: threading.Event | None,
) -> list[DomainCheck]:
    """Check domains in parallel using a thread pool."""
    by_index: dict[int, DomainCheck] = {}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mailcheck") as executor:
        future_to_index = {
            executor.submit(_check_one, hostname, selectors, settings, resolver, cancel_event): index
            for index, hostname in enumerate(hostnames)
        }
        for future in as_completed(future_to_index):
            check = future.result()
            if check is not None:
                by_index[future_to_index[future]] = check

    return [by_index[i] for i in sorted(by_index)]


def _run_safe_check(
    section: str,
    check_fn: Callable[[], CheckResult],
    errors: list[str],
) -> CheckResult:
    """Execute a check function with error isolation.

    If the check raises, the exception is logged, recorded in *errors*, and
    downgraded to a FAIL result carrying the error text.
    """
    try:
        return check_fn()
    except Exception as exc:
        error_msg = f"{section} check failed: {exc}"
        logger.exception("Error in %s check", section)
        errors.append(error_msg)
        return CheckResult.create(
            section, FAIL, f"check error: {exc}", details=[error_msg],
            data={"error": str(exc)},
        )


def _dkim_selectors(
    selectors: list[str] | None,
    settings: DnsSettings,
    mx_provider: str | None,
) -> list[str]:
    """Return the DKIM selectors to probe.

    The caller's list (or the configured defaults) comes first, followed by
    the selectors known for the identified MX provider.
    """
    base = list(selectors) if selectors else list(settings.dkim_selectors)
    provider_selectors = PROVIDER_DKIM_SELECTORS.get(mx_provider or "", [])

    ordered: list[str] = []
    for selector in base + provider_selectors:
        selector = selector.strip()
        if selector and selector not in ordered:
            ordered.append(selector)
    return ordered
