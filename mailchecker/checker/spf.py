"""
SPF record validation.

Validates SPF (Sender Policy Framework) records for a domain:
- Presence and uniqueness of the v=spf1 record
- Recursive DNS lookup count (WARN from 9, FAIL above 10 per RFC 7208)
- ptr mechanism detection
- Policy qualifier detection (-all, ~all, ?all, +all)
"""

from __future__ import annotations

import logging
import re

from mailchecker.checker.resolver import DnsResolver, ResolveOutcome
from mailchecker.checker.spf_lookups import (
    DEFAULT_MAX_DEPTH,
    count_spf_lookups,
    has_spf_mechanisms,
    is_spf_record,
    parse_term,
    spf_tokens,
)
from mailchecker.models import FAIL, PASS, SECTION_SPF, WARN, CheckResult

logger = logging.getLogger(__name__)

# RFC 7208 hard limit; counts above it fail outright.
LOOKUP_LIMIT = 10
# Counts above this (9 and 10) already warn.
LOOKUP_WARN_THRESHOLD = 8

_ALL_RE = re.compile(r"^([+\-~?])?all$", re.IGNORECASE)


def check_spf(
    domain: str,
    existence: ResolveOutcome,
    resolver: DnsResolver,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> CheckResult:
    """Validate the SPF record for *domain*.

    Args:
        domain: The domain name to check.
        existence: Outcome of the NS lookup for *domain*.
        resolver: DnsResolver for the TXT and include lookups.
        max_depth: Include/redirect nesting followed by the lookup counter.

    Returns:
        A CheckResult whose data holds ``records``, ``record``,
        ``lookup_count``, ``lookup_breakdown``, ``all_qualifier`` and
        ``has_mechanisms``.
    """
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_SPF)

    answer = resolver.resolve_txt(domain)
    spf_records = [r.strip() for r in answer.records if is_spf_record(r)]

    data: dict = {
        "records": spf_records,
        "record": None,
        "lookup_count": None,
        "lookup_breakdown": [],
        "all_qualifier": None,
        "has_mechanisms": has_spf_mechanisms(spf_records),
    }

    if not spf_records:
        details = ["No SPF record found"]
        if answer.failed:
            details.append(f"DNS query failed: {answer.error}")
        return CheckResult.create(SECTION_SPF, FAIL, "missing", details=details, data=data)

    if len(spf_records) > 1:
        return CheckResult.create(
            SECTION_SPF,
            FAIL,
            f"multiple SPF records ({len(spf_records)})",
            details=[f"RFC 7208 requires exactly one SPF record; found: {r}" for r in spf_records],
            data=data,
        )

    record = spf_records[0]
    data["record"] = record

    count = count_spf_lookups(
        record, resolver, visited=frozenset({domain.lower()}), max_depth=max_depth
    )
    data["lookup_count"] = count.total
    data["lookup_breakdown"] = [node.to_dict() for node in count.breakdown]

    details = [record, f"DNS lookups: {count.total}/{LOOKUP_LIMIT}"]
    for node in count.breakdown:
        details.append(f"{'  ' * node.depth}{node.mechanism}:{node.target} -> {node.lookups} lookup(s)")

    qualifier = _all_qualifier(record)
    data["all_qualifier"] = qualifier

    if count.total > LOOKUP_LIMIT:
        return CheckResult.create(
            SECTION_SPF,
            FAIL,
            f"too many DNS lookups ({count.total})",
            details=details,
            warnings=[f"SPF exceeds {LOOKUP_LIMIT} DNS lookup limit ({count.total} lookups)"],
            data=data,
        )

    reasons: list[str] = []
    warnings: list[str] = []
    info: list[str] = []

    if count.total > LOOKUP_WARN_THRESHOLD:
        reasons.append(f"{count.total} DNS lookups (near limit)")
        warnings.append(f"SPF uses {count.total} of {LOOKUP_LIMIT} allowed DNS lookups")

    if _has_ptr(record):
        reasons.append("ptr mechanism")
        warnings.append("SPF uses the ptr mechanism, which RFC 7208 discourages")

    # +all and ?all are reported but leave the status alone.
    if qualifier == "~all":
        reasons.append("~all")
        warnings.append("SPF uses ~all (soft fail); consider upgrading to -all (hard fail)")
    elif qualifier == "?all":
        warnings.append("SPF uses ?all (neutral); this provides no protection")
    elif qualifier == "+all":
        warnings.append("SPF uses +all which allows any sender")
    elif qualifier is None and not _has_redirect(record):
        info.append("No 'all' mechanism found in SPF record")

    if answer.cname:
        info.append(f"SPF record served via CNAME {answer.cname}")

    if reasons:
        return CheckResult.create(
            SECTION_SPF, WARN, "; ".join(reasons),
            details=details, warnings=warnings, info_messages=info, data=data,
        )
    return CheckResult.create(
        SECTION_SPF, PASS, "ok",
        details=details, warnings=warnings, info_messages=info, data=data,
    )


def _all_qualifier(record: str) -> str | None:
    """Return the record's ``all`` term normalised to ``<qualifier>all``."""
    for term in reversed(spf_tokens(record)):
        match = _ALL_RE.match(term)
        if match:
            return f"{match.group(1) or '+'}all"
    return None


def _has_ptr(record: str) -> bool:
    return any(parse_term(t)[1] == "ptr" for t in spf_tokens(record))


def _has_redirect(record: str) -> bool:
    return any(parse_term(t)[1] == "redirect" for t in spf_tokens(record))
