"""
TLS-RPT checker.

TLS-RPT (RFC 8460) asks sending MTAs to report failed TLS negotiations.
A missing record only warns; TLS-RPT never fails a domain.
"""

from __future__ import annotations

import logging

from mailchecker.checker.mta_sts import REASON_UNRELATED, parse_tags
from mailchecker.checker.resolver import DnsResolver, ResolveOutcome
from mailchecker.models import NOT_APPLICABLE, PASS, SECTION_TLS_RPT, WARN, CheckResult

logger = logging.getLogger(__name__)


def check_tls_rpt(
    domain: str,
    existence: ResolveOutcome,
    has_mx: bool,
    resolver: DnsResolver,
) -> CheckResult:
    """Check the ``_smtp._tls`` TLS-RPT record for *domain*."""
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_TLS_RPT)
    if not has_mx:
        reason = "no MX records"
        return CheckResult.create(SECTION_TLS_RPT, NOT_APPLICABLE, reason, details=[reason])

    txt_name = f"_smtp._tls.{domain}"
    answer = resolver.resolve_txt(txt_name)
    data: dict = {"record": None, "rua": []}

    if not answer.records:
        details = [f"No TXT record at {txt_name}"]
        if answer.failed:
            details.append(f"DNS query failed: {answer.error}")
        return CheckResult.create(
            SECTION_TLS_RPT, WARN, "missing", details=details,
            warnings=["No TLS-RPT record; TLS delivery failures will not be reported"],
            data=data,
        )

    record = next(
        (r.strip() for r in answer.records if r.strip().lower().startswith("v=tlsrptv1")),
        None,
    )
    if record is None:
        return CheckResult.create(
            SECTION_TLS_RPT, WARN, REASON_UNRELATED,
            details=[f"TXT at {txt_name} lacks v=TLSRPTv1: {r}" for r in answer.records],
            data=data,
        )

    tags = parse_tags(record)
    rua = [u.strip() for u in tags.get("rua", "").split(",") if u.strip()]
    data.update(record=record, rua=rua)

    warnings: list[str] = []
    if not rua:
        warnings.append("TLS-RPT record has no rua= reporting URI")
    return CheckResult.create(
        SECTION_TLS_RPT, PASS, "ok",
        details=[record] + [f"Reports to: {u}" for u in rua],
        warnings=warnings, data=data,
    )
