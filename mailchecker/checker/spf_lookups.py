"""
Recursive SPF DNS-lookup counter.

Counts every DNS-consuming mechanism of an SPF record (RFC 7208 Section
4.6.4: include, a, mx, ptr, exists, redirect) and follows include/redirect
targets recursively, keeping a per-target breakdown so a report can show
which nested include is expensive.  A visited set passed by value through
the recursion stops record cycles.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mailchecker.checker.resolver import DnsResolver

logger = logging.getLogger(__name__)

# Mechanisms that require DNS lookups per RFC 7208 Section 4.6.4
_DNS_LOOKUP_MECHANISMS = {"include", "a", "mx", "ptr", "exists", "redirect"}

# Mechanisms whose target carries its own SPF record
_RECURSIVE_MECHANISMS = {"include", "redirect"}

_ALL_RE = re.compile(r"^[+\-~?]?all$", re.IGNORECASE)

DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class SpfLookupNode:
    """Lookups consumed by one include/redirect target."""

    target: str
    lookups: int
    depth: int
    mechanism: str = "include"

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "lookups": self.lookups,
            "depth": self.depth,
            "mechanism": self.mechanism,
        }


@dataclass(frozen=True)
class SpfLookupCount:
    total: int
    breakdown: tuple[SpfLookupNode, ...] = ()


def is_spf_record(text: str) -> bool:
    """True when *text* begins case-insensitively with ``v=spf1``."""
    stripped = text.strip().lower()
    return stripped == "v=spf1" or stripped.startswith("v=spf1 ")


def spf_tokens(record: str) -> list[str]:
    """Return the whitespace-separated terms of *record* without ``v=spf1``."""
    parts = record.strip().split()
    if parts and parts[0].lower() == "v=spf1":
        parts = parts[1:]
    return parts


def parse_term(term: str) -> tuple[str, str, str]:
    """Split one SPF term into (qualifier, mechanism type, value).

    ``redirect=x`` and ``exp=x`` are modifiers; their type is the modifier
    name.  ``a/24`` keeps the CIDR suffix as its value.
    """
    qualifier = "+"
    if term and term[0] in "+-~?":
        qualifier = term[0]
        term = term[1:]

    if "=" in term:
        key, _, value = term.partition("=")
    elif ":" in term:
        key, _, value = term.partition(":")
    elif "/" in term:
        key, _, value = term.partition("/")
        value = f"/{value}"
    else:
        key, value = term, ""
    return qualifier, key.lower(), value


def count_spf_lookups(
    record: str,
    resolver: DnsResolver,
    visited: frozenset[str] = frozenset(),
    depth: int = 0,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> SpfLookupCount:
    """Count the DNS lookups required to evaluate *record*.

    Args:
        record: The SPF record text.
        resolver: DnsResolver used to fetch include/redirect targets.
        visited: Domains already on this evaluation chain (including the
            domain that published *record*).  Targets in this set add zero.
        depth: Nesting depth of *record*; the top-level record is depth 0.
        max_depth: Nesting depth at which recursion stops.

    Returns:
        SpfLookupCount whose total is the direct mechanism count plus the
        nested totals of every include/redirect target, and whose breakdown
        lists each target with ``lookups = 1 + nested total``.
    """
    total = 0
    breakdown: list[SpfLookupNode] = []

    for term in spf_tokens(record):
        _qualifier, mech_type, value = parse_term(term)
        if mech_type not in _DNS_LOOKUP_MECHANISMS:
            continue
        total += 1

        if mech_type not in _RECURSIVE_MECHANISMS:
            continue

        target = value.strip().rstrip(".").lower()
        if not target:
            continue
        if target in visited:
            logger.debug("SPF cycle: %s already visited at depth %d", target, depth)
            continue

        nested = SpfLookupCount(total=0)
        if depth + 1 > max_depth:
            logger.info("SPF nesting limit (%d) reached at %s", max_depth, target)
        else:
            target_record = _fetch_spf_record(target, resolver)
            if target_record is not None:
                nested = count_spf_lookups(
                    target_record,
                    resolver,
                    visited=visited | {target},
                    depth=depth + 1,
                    max_depth=max_depth,
                )

        breakdown.append(
            SpfLookupNode(
                target=target,
                lookups=1 + nested.total,
                depth=depth,
                mechanism=mech_type,
            )
        )
        breakdown.extend(nested.breakdown)
        total += nested.total

    return SpfLookupCount(total=total, breakdown=tuple(breakdown))


def _fetch_spf_record(domain: str, resolver: DnsResolver) -> str | None:
    """Return the first SPF record published at *domain*, or None."""
    result = resolver.resolve_txt(domain)
    for text in result.records:
        if is_spf_record(text):
            return text.strip()
    logger.debug("No SPF record at include/redirect target %s (%s)", domain, result.outcome.value)
    return None


def has_spf_mechanisms(records: list[str]) -> bool:
    """True when any SPF record has a term beyond ``v=spf1`` and ``all``.

    A record of only ``v=spf1 -all`` declares that the domain sends no mail.
    """
    for record in records:
        terms = spf_tokens(record)
        if terms and _ALL_RE.match(terms[-1]):
            terms = terms[:-1]
        if terms:
            return True
    return False
