"""
DMARC record validation.

Validates DMARC (Domain-based Message Authentication, Reporting and
Conformance) records for a domain:
- Queries _dmarc.{domain} TXT record
- Parses all tag=value pairs (p, sp, rua, ruf, pct, aspf, adkim, fo)
- Classifies the policy: p=reject passes, p=none/quarantine warn,
  missing or conflicting records fail
"""

from __future__ import annotations

import logging
import re

from mailchecker.checker.resolver import DnsResolver, ResolveOutcome
from mailchecker.models import FAIL, PASS, SECTION_DMARC, WARN, CheckResult

logger = logging.getLogger(__name__)

_VALID_POLICIES = ("none", "quarantine", "reject")


def check_dmarc(
    domain: str,
    existence: ResolveOutcome,
    resolver: DnsResolver,
) -> CheckResult:
    """Validate the DMARC record for *domain*.

    Args:
        domain: The domain name to check.
        existence: Outcome of the NS lookup for *domain*.
        resolver: DnsResolver for the ``_dmarc`` TXT lookup.

    Returns:
        A CheckResult whose data holds ``record``, ``tags``, ``policy``,
        ``subdomain_policy``, ``pct``, ``rua``, ``ruf`` and ``enforced``.
    """
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_DMARC)

    dmarc_name = f"_dmarc.{domain}"
    answer = resolver.resolve_txt(dmarc_name)
    dmarc_records = [r.strip() for r in answer.records if _is_dmarc_record(r)]

    data: dict = {
        "record": None,
        "tags": {},
        "policy": None,
        "subdomain_policy": None,
        "pct": None,
        "rua": [],
        "ruf": [],
        "enforced": False,
    }

    if not dmarc_records:
        details = [f"No DMARC record found at {dmarc_name}"]
        if answer.failed:
            details.append(f"DNS query failed: {answer.error}")
        return CheckResult.create(SECTION_DMARC, FAIL, "missing", details=details, data=data)

    if len(dmarc_records) > 1:
        return CheckResult.create(
            SECTION_DMARC,
            FAIL,
            f"multiple DMARC records ({len(dmarc_records)})",
            details=[f"RFC 7489 allows exactly one DMARC record; found: {r}" for r in dmarc_records],
            data=data,
        )

    record = dmarc_records[0]
    tags = parse_dmarc_tags(record)
    policy = (tags.get("p") or "").lower() or None
    subdomain_policy = (tags.get("sp") or "").lower() or None
    pct = parse_pct(tags.get("pct"))
    rua = extract_uris(tags.get("rua", ""))
    ruf = extract_uris(tags.get("ruf", ""))

    data.update(
        record=record,
        tags=tags,
        policy=policy,
        subdomain_policy=subdomain_policy,
        pct=pct,
        rua=rua,
        ruf=ruf,
        enforced=policy in ("quarantine", "reject"),
    )
    details = [record]

    if policy is None:
        return CheckResult.create(
            SECTION_DMARC, FAIL, "missing p= tag",
            details=details + ["DMARC policy (p=) is a required tag"], data=data,
        )
    if policy not in _VALID_POLICIES:
        return CheckResult.create(
            SECTION_DMARC, FAIL, f"invalid policy p={policy}",
            details=details + [f"Unknown DMARC policy value: p={tags.get('p')}"], data=data,
        )

    reasons: list[str] = []
    warnings: list[str] = []
    info: list[str] = []

    if policy == "none":
        reasons.append("p=none")
        warnings.append("DMARC policy is p=none (monitoring only); consider p=quarantine or p=reject")
    elif policy == "quarantine":
        reasons.append("p=quarantine")
        warnings.append("DMARC policy is p=quarantine; p=reject gives full protection")

    if tags.get("pct") is not None and pct is None:
        warnings.append(f"Invalid pct value: {tags.get('pct')!r}")
    elif pct is not None and pct < 100:
        reasons.append(f"pct={pct}")
        warnings.append(f"pct={pct} means only {pct}% of messages are subject to the DMARC policy")

    if subdomain_policy is None:
        reasons.append("no sp")
        warnings.append(f"No sp= tag; subdomains inherit p={policy}")
    elif subdomain_policy == "none":
        reasons.append("sp=none")
        warnings.append("Subdomain policy is sp=none; subdomains are not protected")
    elif subdomain_policy not in _VALID_POLICIES:
        warnings.append(f"Unknown subdomain policy value: sp={subdomain_policy}")

    if not rua:
        reasons.append("no rua")
        warnings.append("No rua= aggregate report URI specified; you will not receive DMARC reports")
    if not ruf:
        info.append("No ruf= forensic report URI specified")

    for tag, label in (("adkim", "DKIM"), ("aspf", "SPF")):
        if (tags.get(tag) or "r").lower() == "r":
            info.append(f"{label} alignment is relaxed ({tag}=r)")

    if answer.cname:
        info.append(f"DMARC record served via CNAME {answer.cname}")

    if policy == "reject" and not reasons:
        return CheckResult.create(
            SECTION_DMARC, PASS, "p=reject",
            details=details, warnings=warnings, info_messages=info, data=data,
        )
    return CheckResult.create(
        SECTION_DMARC, WARN, "; ".join(reasons),
        details=details, warnings=warnings, info_messages=info, data=data,
    )


def _is_dmarc_record(text: str) -> bool:
    return re.match(r"^v\s*=\s*dmarc1\s*(;|$)", text.strip(), re.IGNORECASE) is not None


def parse_dmarc_tags(record: str) -> dict[str, str]:
    """Parse a DMARC record string into a dict of tag=value pairs.

    Tags are separated by semicolons. Whitespace around tags and values
    is stripped. The v=DMARC1 tag is included in the output.
    """
    tags: dict[str, str] = {}
    for part in record.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" in part:
            key, _, value = part.partition("=")
            tags[key.strip().lower()] = value.strip()
        else:
            # Some records have bare tokens; store as-is
            tags[part.lower()] = ""
    return tags


def extract_uris(value: str) -> list[str]:
    """Extract mailto: URIs from a DMARC rua/ruf tag value.

    Values are comma-separated URIs, potentially with size limits
    (e.g., mailto:user@example.com!10m).
    """
    if not value:
        return []
    uris: list[str] = []
    for item in value.split(","):
        item = item.strip()
        if item:
            match = re.match(r"(mailto:[^\s!]+)", item, re.IGNORECASE)
            uris.append(match.group(1) if match else item)
    return uris


def parse_pct(pct_str: str | None) -> int | None:
    """Parse the pct= tag value as an integer, returning None if invalid."""
    if pct_str is None:
        return None
    try:
        value = int(pct_str)
    except (ValueError, TypeError):
        return None
    if 0 <= value <= 100:
        return value
    return None
