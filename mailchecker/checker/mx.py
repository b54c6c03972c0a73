"""
MX record checker: resolves MX records and identifies the email provider.

The provider identification is based on a static suffix map of well-known
MX hostnames; the identified provider also supplies extra DKIM selectors to
probe.
"""

from __future__ import annotations

import logging

from mailchecker.checker.resolver import DnsResolver, MxRecord, ResolveOutcome
from mailchecker.models import (
    FAIL,
    NOT_APPLICABLE,
    PASS,
    SECTION_MX,
    WARN,
    CheckResult,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider identification map
# ---------------------------------------------------------------------------

# Maps MX hostname suffixes (lowercased) to friendly provider names.
# Checked in order; first match wins.
_MX_PROVIDER_MAP: list[tuple[str, str]] = [
    ("google.com", "Google Workspace"),
    ("googlemail.com", "Google Workspace"),
    ("outlook.com", "Microsoft 365"),
    ("pphosted.com", "Proofpoint"),
    ("mimecast.com", "Mimecast"),
    ("zoho.com", "Zoho Mail"),
    ("zoho.eu", "Zoho Mail"),
    ("amazonses.com", "Amazon SES"),
    ("amazonaws.com", "Amazon SES"),
    ("protonmail.ch", "ProtonMail"),
    ("ovh.net", "OVH"),
    ("secureserver.net", "GoDaddy"),
    ("mailgun.org", "Mailgun"),
    ("sendgrid.net", "SendGrid"),
    ("messagelabs.com", "Broadcom (Symantec)"),
    ("barracudanetworks.com", "Barracuda"),
    ("emailsrvr.com", "Rackspace"),
    ("fastmail.com", "Fastmail"),
    ("messagingengine.com", "Fastmail"),
    ("icloud.com", "Apple iCloud"),
    ("yahoodns.net", "Yahoo Mail"),
    ("yandex.net", "Yandex Mail"),
    ("migadu.com", "Migadu"),
    ("titan.email", "Titan"),
]


# Known DKIM selectors per provider, probed in addition to the caller's list.
PROVIDER_DKIM_SELECTORS: dict[str, list[str]] = {
    "Google Workspace": ["google"],
    "Microsoft 365": ["selector1", "selector2"],
    "ProtonMail": ["protonmail", "protonmail2", "protonmail3"],
    "Zoho Mail": ["zoho", "default", "zoho1"],
    "Amazon SES": ["amazonses", "ses", "k1"],
    "Mimecast": ["mimecast20190104", "mimecast"],
    "Proofpoint": ["s1", "s2", "proofpoint"],
    "OVH": ["ovhmo", "default", "mail"],
    "GoDaddy": ["default", "k1"],
    "Mailgun": ["smtp", "k1", "krs", "mail"],
    "SendGrid": ["s1", "s2", "smtpapi"],
    "Apple iCloud": ["sig1"],
    "Yahoo Mail": ["s1024", "s2048"],
    "Yandex Mail": ["mail"],
    "Fastmail": ["fm1", "fm2", "fm3"],
    "Migadu": ["key1", "key2", "key3"],
    "Titan": ["titan", "default"],
    "Rackspace": ["s1", "s2"],
    "Barracuda": ["s1", "s2"],
}


def identify_mx_provider(exchange: str) -> str:
    """Return a friendly provider name based on the MX exchange hostname.

    Args:
        exchange: The MX exchange hostname (e.g. "alt1.aspmx.l.google.com.").

    Returns:
        The provider name, or the raw exchange hostname if no match is found.
    """
    exchange_lower = exchange.rstrip(".").lower()

    for suffix, provider_name in _MX_PROVIDER_MAP:
        if exchange_lower == suffix or exchange_lower.endswith("." + suffix):
            return provider_name

    return exchange_lower


def check_mx(
    domain: str,
    existence: ResolveOutcome,
    resolver: DnsResolver,
) -> CheckResult:
    """Resolve MX records for *domain* and classify mail reception.

    Args:
        domain: The domain name to query.
        existence: Outcome of the NS lookup for *domain*.
        resolver: DnsResolver used for the MX query.

    Returns:
        A CheckResult whose data holds ``records`` (list of
        ``{priority, exchange}``), ``provider`` and ``has_mx``.
    """
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_MX)

    answer = resolver.resolve_mx(domain)
    records: list[MxRecord] = [r for r in answer.records if not r.is_null]
    null_mx = any(r.is_null for r in answer.records)

    data = {
        "records": [{"priority": r.priority, "exchange": r.exchange} for r in records],
        "provider": None,
        "has_mx": False,
        "ns_outcome": existence.value,
        "mx_outcome": answer.outcome.value,
    }
    details = [f"{r.priority} {r.exchange}" for r in records]

    if records:
        provider = identify_mx_provider(records[0].exchange)
        data["provider"] = provider
        data["has_mx"] = True
        info = [f"Primary MX provider: {provider}"]
        if null_mx:
            info.append("Null MX published alongside regular MX records")
        return CheckResult.create(
            SECTION_MX, PASS, f"{len(records)} MX record(s)",
            details=details, info_messages=info, data=data,
        )

    if null_mx:
        reason = "null MX (domain accepts no mail)"
        return CheckResult.create(SECTION_MX, NOT_APPLICABLE, reason, details=[reason], data=data)

    if answer.failed:
        logger.warning("MX lookup for %s failed: %s", domain, answer.error)
        return CheckResult.create(
            SECTION_MX, WARN, "DNS resolution failed (SERVFAIL)",
            details=[answer.error or "MX query failed"], data=data,
        )

    if answer.outcome is ResolveOutcome.NXDOMAIN:
        return CheckResult.create(
            SECTION_MX, FAIL, "MX lookup returned NXDOMAIN",
            details=[answer.error or "NXDOMAIN"], data=data,
        )

    if existence is ResolveOutcome.SERVFAIL:
        return CheckResult.create(
            SECTION_MX, FAIL, "NS lookup failed and no MX records found",
            details=[answer.error or "No MX records"], data=data,
        )

    reason = "no MX records (send-only domain)"
    return CheckResult.create(SECTION_MX, NOT_APPLICABLE, reason, details=[reason], data=data)
