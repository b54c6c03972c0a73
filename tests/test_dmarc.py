"""
Unit tests for mailchecker/checker/dmarc.py

Verifies policy classification, the warnings that downgrade p=reject, and
the tag parsing helpers.
"""

from __future__ import annotations

import pytest

from mailchecker.checker.dmarc import check_dmarc, extract_uris, parse_dmarc_tags, parse_pct
from mailchecker.checker.resolver import ResolveOutcome
from mailchecker.models import FAIL, NOT_APPLICABLE, PASS, WARN

_RUA = "rua=mailto:dmarc@example.com"


def _check(make_resolver, *records):
    resolver = make_resolver(txt={"_dmarc.example.com": list(records)})
    return check_dmarc("example.com", ResolveOutcome.SUCCESS, resolver)


# ---------------------------------------------------------------------------
# Tests - presence
# ---------------------------------------------------------------------------


def test_nonexistent_domain_is_not_applicable(make_resolver):
    result = check_dmarc("example.com", ResolveOutcome.NXDOMAIN, make_resolver())
    assert result.status == NOT_APPLICABLE


def test_missing_record_fails(make_resolver):
    result = _check(make_resolver)
    assert result.status == FAIL
    assert result.reason == "missing"


def test_non_dmarc_txt_is_ignored(make_resolver):
    result = _check(make_resolver, "v=spf1 -all")
    assert result.reason == "missing"


def test_multiple_records_fail(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=reject; {_RUA}", "v=DMARC1; p=none")
    assert result.status == FAIL
    assert result.reason == "multiple DMARC records (2)"


def test_missing_policy_tag_fails(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; {_RUA}")
    assert result.status == FAIL
    assert result.reason == "missing p= tag"


def test_invalid_policy_fails(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=block; {_RUA}")
    assert result.status == FAIL
    assert result.reason == "invalid policy p=block"


# ---------------------------------------------------------------------------
# Tests - policy classification
# ---------------------------------------------------------------------------


def test_reject_with_reporting_passes(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=reject; sp=reject; {_RUA}")

    assert result.status == PASS
    assert result.reason == "p=reject"
    assert result.data["enforced"] is True
    assert result.data["rua"] == ("mailto:dmarc@example.com",)
    assert result.to_dict()["data"]["rua"] == ["mailto:dmarc@example.com"]


def test_missing_ruf_is_info_only(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=reject; sp=quarantine; {_RUA}")

    assert result.status == PASS
    assert any("ruf" in m for m in result.info_messages)


def test_missing_sp_downgrades_reject(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=reject; {_RUA}")

    assert result.status == WARN
    assert result.reason == "no sp"
    assert result.data["subdomain_policy"] is None
    assert any("sp=" in w for w in result.warnings)


def test_none_policy_warns(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=none; sp=reject; {_RUA}")
    assert result.status == WARN
    assert result.reason == "p=none"
    assert result.data["enforced"] is False


def test_quarantine_policy_warns(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=quarantine; sp=quarantine; {_RUA}")
    assert result.status == WARN
    assert result.reason == "p=quarantine"
    assert result.data["enforced"] is True


@pytest.mark.parametrize(
    "record, reason",
    [
        (f"v=DMARC1; p=reject; pct=50; sp=reject; {_RUA}", "pct=50"),
        (f"v=DMARC1; p=reject; sp=none; {_RUA}", "sp=none"),
        ("v=DMARC1; p=reject; sp=reject", "no rua"),
        ("v=DMARC1; p=reject", "no sp; no rua"),
    ],
)
def test_reject_downgraded_by_weaknesses(make_resolver, record, reason):
    result = _check(make_resolver, record)
    assert result.status == WARN
    assert result.reason == reason


def test_reasons_are_joined(make_resolver):
    result = _check(make_resolver, "v=DMARC1; p=none; pct=10")
    assert result.reason == "p=none; pct=10; no sp; no rua"


def test_policy_value_case_insensitive(make_resolver):
    result = _check(make_resolver, f"v=DMARC1; p=REJECT; sp=Reject; {_RUA}")
    assert result.status == PASS


# ---------------------------------------------------------------------------
# Tests - helpers
# ---------------------------------------------------------------------------


def test_parse_tags():
    tags = parse_dmarc_tags("v=DMARC1; p=reject ; rua=mailto:a@x.com;")
    assert tags == {"v": "DMARC1", "p": "reject", "rua": "mailto:a@x.com"}


def test_extract_uris_strips_size_limit():
    assert extract_uris("mailto:a@x.com!10m, mailto:b@y.com") == ["mailto:a@x.com", "mailto:b@y.com"]


@pytest.mark.parametrize("value, expected", [("100", 100), ("0", 0), ("abc", None), ("150", None), (None, None)])
def test_parse_pct(value, expected):
    assert parse_pct(value) == expected
