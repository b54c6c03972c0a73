"""
MTA-STS checker.

MTA-STS (RFC 8461) enforces TLS encryption for inbound SMTP connections.
The check reads the _mta-sts.{domain} TXT record and, when one is
published, fetches the HTTPS policy file to read its mode.
"""

from __future__ import annotations

import logging

import requests

from mailchecker.checker.resolver import DnsResolver, ResolveOutcome
from mailchecker.models import FAIL, NOT_APPLICABLE, PASS, SECTION_MTA_STS, WARN, CheckResult

logger = logging.getLogger(__name__)

# Timeout (seconds) for the HTTPS policy file fetch
DEFAULT_FETCH_TIMEOUT = 10.0

# RFC 8461 caps the policy body at 64 KiB
_MAX_POLICY_BYTES = 65536

_USER_AGENT = "Mailchecker/1.0"

REASON_UNRELATED = "likely unrelated record (wildcard TXT)"


def policy_url(domain: str) -> str:
    return f"https://mta-sts.{domain}/.well-known/mta-sts.txt"


def check_mta_sts(
    domain: str,
    existence: ResolveOutcome,
    has_mx: bool,
    resolver: DnsResolver,
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> CheckResult:
    """Check MTA-STS configuration for *domain*.

    Args:
        domain: The domain name to check (e.g., "example.com").
        existence: Outcome of the NS lookup for *domain*.
        has_mx: Whether the MX check found mail exchangers.
        resolver: DnsResolver for the ``_mta-sts`` TXT lookup.
        fetch_timeout: Timeout in seconds for the policy fetch.

    Returns:
        A CheckResult whose data holds ``record``, ``id``, ``policy_url``,
        ``policy_mode``, ``policy_mx``, ``policy_max_age`` and
        ``policy_reachable``.
    """
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_MTA_STS)
    if not has_mx:
        reason = "no MX records"
        return CheckResult.create(SECTION_MTA_STS, NOT_APPLICABLE, reason, details=[reason])

    txt_name = f"_mta-sts.{domain}"
    answer = resolver.resolve_txt(txt_name)

    data: dict = {
        "record": None,
        "id": None,
        "policy_url": policy_url(domain),
        "policy_mode": None,
        "policy_mx": [],
        "policy_max_age": None,
        "policy_reachable": None,
    }

    if not answer.records:
        details = [f"No TXT record at {txt_name}"]
        if answer.failed:
            details.append(f"DNS query failed: {answer.error}")
        return CheckResult.create(SECTION_MTA_STS, FAIL, "missing", details=details, data=data)

    sts_record = _find_sts_record(list(answer.records))
    if sts_record is None:
        return CheckResult.create(
            SECTION_MTA_STS,
            WARN,
            REASON_UNRELATED,
            details=[f"TXT at {txt_name} lacks v=STSv1: {r}" for r in answer.records],
            data=data,
        )

    tags = parse_tags(sts_record)
    data["record"] = sts_record
    data["id"] = tags.get("id")
    details = [sts_record]
    warnings: list[str] = []
    if not tags.get("id"):
        warnings.append("MTA-STS TXT record has no id= value")

    body = fetch_policy(domain, fetch_timeout, warnings)
    if body is None:
        data["policy_reachable"] = False
        return CheckResult.create(
            SECTION_MTA_STS, FAIL, "policy unreachable",
            details=details + [f"Could not fetch {data['policy_url']}"],
            warnings=warnings, data=data,
        )

    data["policy_reachable"] = True
    policy = parse_policy_file(body, warnings)
    data["policy_mode"] = policy["mode"]
    data["policy_mx"] = policy["mx"]
    data["policy_max_age"] = policy["max_age"]
    details.append(f"Policy mode: {policy['mode'] or '(missing)'}")
    details.extend(f"Policy mx: {mx}" for mx in policy["mx"])

    if policy["mode"] == "enforce":
        return CheckResult.create(SECTION_MTA_STS, PASS, "enforce", details=details, warnings=warnings, data=data)
    if policy["mode"] == "testing":
        warnings.append("MTA-STS policy is in testing mode; TLS failures are only reported")
        return CheckResult.create(SECTION_MTA_STS, WARN, "testing", details=details, warnings=warnings, data=data)
    return CheckResult.create(
        SECTION_MTA_STS, FAIL, "mode missing or invalid",
        details=details, warnings=warnings, data=data,
    )


def _find_sts_record(records: list[str]) -> str | None:
    """Return the first record that looks like an MTA-STS TXT entry."""
    for rec in records:
        if rec.strip().lower().startswith("v=stsv1"):
            return rec.strip()
    return None


def parse_tags(record: str) -> dict[str, str]:
    """Parse semicolon-separated tag=value pairs from a DNS TXT record."""
    tags: dict[str, str] = {}
    for part in record.split(";"):
        part = part.strip()
        if "=" in part:
            key, _, value = part.partition("=")
            tags[key.strip().lower()] = value.strip()
    return tags


def fetch_policy(domain: str, timeout: float, warnings: list[str]) -> str | None:
    """Fetch the MTA-STS policy body, returning None when unreachable."""
    url = policy_url(domain)
    try:
        resp = requests.get(
            url,
            headers={"User-Agent": _USER_AGENT},
            timeout=timeout,
            allow_redirects=False,
        )
    except requests.RequestException as exc:
        logger.info("MTA-STS policy fetch for %s failed: %s", domain, exc)
        warnings.append(f"MTA-STS policy file unreachable: {exc}")
        return None

    if resp.status_code != 200:
        logger.info("MTA-STS policy fetch for %s returned HTTP %d", domain, resp.status_code)
        warnings.append(f"MTA-STS policy file returned HTTP {resp.status_code}")
        return None

    return resp.content[:_MAX_POLICY_BYTES].decode("utf-8", errors="replace")


def parse_policy_file(body: str, warnings: list[str]) -> dict:
    """Parse the content of an MTA-STS policy file.

    Returns a dict with keys ``version``, ``mode``, ``mx`` and ``max_age``.
    """
    policy: dict = {"version": None, "mode": None, "mx": [], "max_age": None}

    for line in body.splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip().lower()
        value = value.strip()

        if key == "version":
            policy["version"] = value
            if value.lower() != "stsv1":
                warnings.append(f"Unexpected policy file version: {value!r}")
        elif key == "mode":
            mode = value.lower()
            if mode in ("enforce", "testing", "none"):
                policy["mode"] = mode
            else:
                warnings.append(f"Unknown MTA-STS mode: {value!r}")
        elif key == "mx":
            policy["mx"].append(value)
        elif key == "max_age":
            try:
                policy["max_age"] = int(value)
            except ValueError:
                warnings.append(f"Invalid max_age value: {value!r}")

    return policy
