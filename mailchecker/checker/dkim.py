"""
DKIM key validation.

Validates DKIM (DomainKeys Identified Mail) keys for a domain:
- Queries {selector}._domainkey.{domain} TXT records for each selector
- Parses DKIM record tags (v=, k=, p=, t=)
- Detects revoked keys (empty p=) and unexpected versions
- Measures RSA key size using the cryptography library

DKIM is binary given applicability: PASS when any selector publishes a
usable key, FAIL otherwise.  Domains with no mail flow (no MX and an SPF
record without sending mechanisms) are N/A.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import load_der_public_key

from mailchecker.checker.resolver import DnsResolver, ResolveOutcome
from mailchecker.models import FAIL, NOT_APPLICABLE, PASS, SECTION_DKIM, CheckResult

logger = logging.getLogger(__name__)

MIN_KEY_BITS = 1024


def check_dkim(
    domain: str,
    selectors: list[str],
    existence: ResolveOutcome,
    has_mx: bool,
    has_spf_mechanisms: bool,
    resolver: DnsResolver,
) -> CheckResult:
    """Probe DKIM *selectors* for *domain*.

    Args:
        domain: The domain name to check.
        selectors: Selector strings to probe, in order.
        existence: Outcome of the NS lookup for *domain*.
        has_mx: Whether the MX check found mail exchangers.
        has_spf_mechanisms: Whether SPF lists anything beyond ``all``.
        resolver: DnsResolver for the selector TXT lookups.

    Returns:
        A CheckResult whose data holds per-selector ``results`` and the list
        of ``valid_selectors``.
    """
    if existence is ResolveOutcome.NXDOMAIN:
        return CheckResult.not_applicable(SECTION_DKIM)

    if not has_mx and not has_spf_mechanisms:
        reason = "no mail flow (no MX, SPF has no sending mechanisms)"
        return CheckResult.create(SECTION_DKIM, NOT_APPLICABLE, reason, details=[reason])

    if not selectors:
        return CheckResult.create(
            SECTION_DKIM, FAIL, "no DKIM selectors configured",
            details=["No DKIM selectors were supplied to probe"],
        )

    selector_results: list[dict[str, Any]] = []
    valid_selectors: list[str] = []
    details: list[str] = []
    warnings: list[str] = []

    for selector in selectors:
        result = _check_single_selector(domain, selector, resolver)
        selector_results.append(result)
        if result["valid"]:
            valid_selectors.append(selector)
            details.append(f"{selector}: valid key" + (
                f" ({result['key_type']}, {result['key_size']} bits)" if result["key_size"] else ""
            ))
        elif result["record"] is not None or result["error"]:
            details.append(f"{selector}: {result['error'] or 'invalid record'}")
        for warning in result["warnings"]:
            warnings.append(f"[{selector}] {warning}")

    data = {
        "selectors": list(selectors),
        "valid_selectors": valid_selectors,
        "results": selector_results,
    }

    if valid_selectors:
        return CheckResult.create(
            SECTION_DKIM, PASS, f"valid key: {', '.join(valid_selectors)}",
            details=details, warnings=warnings, data=data,
        )

    details.append(f"Probed selectors: {', '.join(selectors)}")
    return CheckResult.create(
        SECTION_DKIM, FAIL, "no valid DKIM key found",
        details=details, warnings=warnings, data=data,
    )


def _check_single_selector(
    domain: str,
    selector: str,
    resolver: DnsResolver,
) -> dict[str, Any]:
    """Validate a single DKIM selector for *domain*."""
    selector_result: dict[str, Any] = {
        "selector": selector,
        "record": None,
        "valid": False,
        "key_type": None,
        "key_size": None,
        "testing": False,
        "error": None,
        "warnings": [],
    }

    dkim_name = f"{selector}._domainkey.{domain}"
    answer = resolver.resolve_txt(dkim_name)

    if answer.failed:
        selector_result["error"] = f"DNS query failed: {answer.error}"
        return selector_result
    if not answer.records:
        return selector_result

    records = [r.strip() for r in answer.records if "p=" in r.lower()]
    if not records:
        selector_result["record"] = answer.records[0]
        selector_result["error"] = "TXT record has no p= tag"
        return selector_result

    for raw_record in records:
        selector_result["record"] = raw_record
        tags = parse_dkim_tags(raw_record)

        version = tags.get("v")
        if version is not None and version.upper() != "DKIM1":
            selector_result["error"] = f"unexpected DKIM version v={version}"
            continue

        public_key = tags.get("p", "")
        if not public_key:
            selector_result["error"] = "key revoked (empty p= value)"
            continue

        key_type = tags.get("k", "rsa").lower()
        selector_result["key_type"] = key_type
        selector_result["valid"] = True
        selector_result["error"] = None
        selector_result["testing"] = "y" in tags.get("t", "").lower().split(":")

        if selector_result["testing"]:
            selector_result["warnings"].append("DKIM key is in testing mode (t=y)")

        key_size = measure_key_size(public_key, key_type)
        selector_result["key_size"] = key_size
        if key_size is not None and key_type == "rsa" and key_size < MIN_KEY_BITS:
            selector_result["warnings"].append(
                f"DKIM key size is {key_size} bits; minimum {MIN_KEY_BITS} required, 2048+ recommended"
            )
        break

    return selector_result


def parse_dkim_tags(record: str) -> dict[str, str]:
    """Parse a DKIM TXT record into a dict of tag=value pairs.

    Tags are separated by semicolons.  Whitespace inside values (common in
    split base64 keys) is removed.
    """
    tags: dict[str, str] = {}
    for part in record.split(";"):
        part = part.strip()
        if not part or "=" not in part:
            continue
        key, _, value = part.partition("=")
        tags[key.strip().lower()] = "".join(value.split())
    return tags


def measure_key_size(p_value: str, key_type: str) -> int | None:
    """Decode the base64 public key and return its size in bits.

    Returns None if the key cannot be parsed.
    """
    if key_type == "ed25519":
        # Ed25519 keys are always 256 bits
        return 256

    try:
        der_bytes = base64.b64decode(p_value, validate=False)
    except (binascii.Error, ValueError) as exc:
        logger.debug("Failed to decode DKIM p= base64: %s", exc)
        return None

    try:
        public_key = load_der_public_key(der_bytes)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        logger.debug("Failed to load DER public key: %s", exc)
        return None
    return getattr(public_key, "key_size", None)
