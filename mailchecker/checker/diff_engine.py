"""
Diff engine for comparing two snapshots of domain check summaries.

Each snapshot maps a lowercased domain name to the flat Summary row exported
by a sweep.  For every domain the engine reports whether it is new, removed,
or changed, and groups the changed fields by category (MX, SPF, DKIM,
DMARC, MTA-STS, TLS-RPT, Overall).  Direction is classified as:

  improvement : a status field moved up the FAIL < WARN < PASS ranking
  regression  : a status field moved down the ranking
  neutral     : a flag or text change, or a status change involving an
                unranked value such as N/A
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from mailchecker.models import normalise_domain

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Change vocabulary
# ---------------------------------------------------------------------------

CHANGE_NEW = "NEW"
CHANGE_REMOVED = "REMOVED"
CHANGE_CHANGED = "CHANGED"

TREND_IMPROVED = "Improved"
TREND_REGRESSED = "Regressed"
TREND_MIXED = "Mixed"
TREND_NEUTRAL = "Neutral"

DIRECTION_IMPROVEMENT = "improvement"
DIRECTION_REGRESSION = "regression"
DIRECTION_NEUTRAL = "neutral"

KIND_STATUS = "status"
KIND_FLAG = "flag"
KIND_TEXT = "text"

CATEGORY_ORDER = ("MX", "SPF", "DKIM", "DMARC", "MTA-STS", "TLS-RPT", "Overall")

# Status severity ranking (higher = better)
_STATUS_RANK: dict[str, int] = {
    "FAIL": 0,
    "WARN": 1,
    "PASS": 2,
}

# (field, category, kind); order inside a category is the reporting order
COMPARED_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("MX_Status", "MX", KIND_STATUS),
    ("Has_MX", "MX", KIND_FLAG),
    ("MX_Provider", "MX", KIND_TEXT),
    ("MX_Reason", "MX", KIND_TEXT),
    ("SPF_Status", "SPF", KIND_STATUS),
    ("SPF_Healthy", "SPF", KIND_FLAG),
    ("SPF_Lookups", "SPF", KIND_TEXT),
    ("SPF_Reason", "SPF", KIND_TEXT),
    ("DKIM_Status", "DKIM", KIND_STATUS),
    ("DKIM_Reason", "DKIM", KIND_TEXT),
    ("DMARC_Status", "DMARC", KIND_STATUS),
    ("DMARC_Enforced", "DMARC", KIND_FLAG),
    ("DMARC_Policy", "DMARC", KIND_TEXT),
    ("DMARC_Reason", "DMARC", KIND_TEXT),
    ("MTA_STS_Status", "MTA-STS", KIND_STATUS),
    ("MTA_STS_Mode", "MTA-STS", KIND_TEXT),
    ("MTA_STS_Reason", "MTA-STS", KIND_TEXT),
    ("TLS_RPT_Status", "TLS-RPT", KIND_STATUS),
    ("TLS_RPT_Reason", "TLS-RPT", KIND_TEXT),
    ("Status", "Overall", KIND_STATUS),
    ("Domain_Exists", "Overall", KIND_FLAG),
    ("Reason", "Overall", KIND_TEXT),
)


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: str | None
    new_value: str | None
    kind: str
    direction: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "kind": self.kind,
            "direction": self.direction,
        }


@dataclass(frozen=True)
class DomainChangeRecord:
    """One change record: a NEW/REMOVED domain or one changed category."""

    domain: str
    change_type: str
    category: str | None = None
    trend: str | None = None
    domain_trend: str | None = None
    changes: tuple[FieldChange, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "change_type": self.change_type,
            "category": self.category,
            "trend": self.trend,
            "domain_trend": self.domain_trend,
            "changes": [c.to_dict() for c in self.changes],
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def comparison_key(domain: str) -> str:
    """Key used to align two independently sourced snapshots."""
    return normalise_domain(domain)


def build_snapshot(
    rows: Iterable[Mapping[str, Any]],
    domain_field: str = "Domain",
) -> dict[str, dict[str, Any]]:
    """Key *rows* by the comparison key of their domain column.

    Rows without a domain are skipped; a later row for the same domain
    replaces an earlier one.
    """
    snapshot: dict[str, dict[str, Any]] = {}
    for row in rows:
        key = comparison_key(str(row.get(domain_field) or ""))
        if not key:
            logger.debug("Skipping snapshot row without %s: %r", domain_field, row)
            continue
        if key in snapshot:
            logger.debug("Duplicate snapshot row for %s; keeping the last one", key)
        snapshot[key] = dict(row)
    return snapshot


def diff_snapshots(
    old: Mapping[str, Mapping[str, Any]],
    new: Mapping[str, Mapping[str, Any]],
) -> list[DomainChangeRecord]:
    """Compare two snapshots and return the change records.

    Args:
        old: The earlier snapshot, keyed by comparison key.
        new: The later snapshot, keyed by comparison key.

    Returns:
        Records sorted by domain then category order: one NEW or REMOVED
        record for domains present on one side only, and one CHANGED record
        per affected category for domains present on both.
    """
    old_keyed = {comparison_key(k): v for k, v in old.items()}
    new_keyed = {comparison_key(k): v for k, v in new.items()}

    records: list[DomainChangeRecord] = []
    for domain in sorted(set(old_keyed) | set(new_keyed)):
        if domain not in old_keyed:
            records.append(DomainChangeRecord(domain=domain, change_type=CHANGE_NEW))
        elif domain not in new_keyed:
            records.append(DomainChangeRecord(domain=domain, change_type=CHANGE_REMOVED))
        else:
            records.extend(_compare_domain(domain, old_keyed[domain], new_keyed[domain]))

    if records:
        summary = summarize_changes(records)
        logger.info(
            "Snapshot diff: %d record(s) (new=%d, removed=%d, improved=%d, regressed=%d, mixed=%d)",
            len(records),
            summary["new"],
            summary["removed"],
            summary["improved"],
            summary["regressed"],
            summary["mixed"],
        )
    return records


def summarize_changes(records: Iterable[DomainChangeRecord]) -> dict[str, int]:
    """Count domains by change type and per-domain trend."""
    counts = {"new": 0, "removed": 0, "changed": 0,
              "improved": 0, "regressed": 0, "mixed": 0, "neutral": 0}
    seen: set[str] = set()
    for record in records:
        if record.change_type == CHANGE_NEW:
            counts["new"] += 1
            continue
        if record.change_type == CHANGE_REMOVED:
            counts["removed"] += 1
            continue
        if record.domain in seen:
            continue
        seen.add(record.domain)
        counts["changed"] += 1
        if record.domain_trend:
            counts[record.domain_trend.lower()] += 1
    return counts


# ---------------------------------------------------------------------------
# Internal: per-domain comparison
# ---------------------------------------------------------------------------


def _compare_domain(
    domain: str,
    old_row: Mapping[str, Any],
    new_row: Mapping[str, Any],
) -> list[DomainChangeRecord]:
    by_category: dict[str, list[FieldChange]] = {}

    for field_name, category, kind in COMPARED_FIELDS:
        missing = field_name not in old_row or field_name not in new_row
        # A missing flag column reads as blank; other missing columns are skipped
        if missing and kind != KIND_FLAG:
            continue
        change = _compare_field(field_name, kind, old_row.get(field_name), new_row.get(field_name))
        if change is not None:
            by_category.setdefault(category, []).append(change)

    # Text changes are noise when a status change already explains the category
    for category, changes in list(by_category.items()):
        if any(c.kind == KIND_STATUS for c in changes):
            changes = [c for c in changes if c.kind != KIND_TEXT]
        if changes:
            by_category[category] = changes
        else:
            del by_category[category]

    if not by_category:
        return []

    all_changes = [c for changes in by_category.values() for c in changes]
    domain_trend = _trend(all_changes)

    return [
        DomainChangeRecord(
            domain=domain,
            change_type=CHANGE_CHANGED,
            category=category,
            trend=_trend(by_category[category]),
            domain_trend=domain_trend,
            changes=tuple(by_category[category]),
        )
        for category in CATEGORY_ORDER
        if category in by_category
    ]


def _compare_field(field_name: str, kind: str, old_value: Any, new_value: Any) -> FieldChange | None:
    if kind == KIND_STATUS:
        old_norm = _normalise_status(old_value)
        new_norm = _normalise_status(new_value)
        if old_norm == new_norm:
            return None
        return FieldChange(field_name, old_norm, new_norm, kind, _status_direction(old_norm, new_norm))

    if kind == KIND_FLAG:
        old_norm = _normalise_flag(old_value)
        new_norm = _normalise_flag(new_value)
        if old_norm == new_norm:
            return None
        return FieldChange(field_name, old_norm, new_norm, kind, DIRECTION_NEUTRAL)

    old_text = "" if old_value is None else str(old_value)
    new_text = "" if new_value is None else str(new_value)
    if old_text == new_text:
        return None
    return FieldChange(field_name, old_text, new_text, kind, DIRECTION_NEUTRAL)


def _normalise_status(value: Any) -> str:
    return "" if value is None else str(value).strip().upper()


def _normalise_flag(value: Any) -> str:
    """Lowercase a flag value; blank and absent both become ""."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def _status_direction(old_status: str, new_status: str) -> str:
    old_rank = _STATUS_RANK.get(old_status)
    new_rank = _STATUS_RANK.get(new_status)
    if old_rank is None or new_rank is None:
        return DIRECTION_NEUTRAL
    if new_rank > old_rank:
        return DIRECTION_IMPROVEMENT
    return DIRECTION_REGRESSION


def _trend(changes: list[FieldChange]) -> str:
    improved = any(c.direction == DIRECTION_IMPROVEMENT for c in changes)
    regressed = any(c.direction == DIRECTION_REGRESSION for c in changes)
    if improved and regressed:
        return TREND_MIXED
    if improved:
        return TREND_IMPROVED
    if regressed:
        return TREND_REGRESSED
    return TREND_NEUTRAL
