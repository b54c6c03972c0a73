"""
Unit tests for mailchecker/ingest/parser.py

Verifies domain extraction from email lists, domain lists, or mixed
content, and loading of CSV/JSON sweep exports into snapshots.
"""

from __future__ import annotations

import json

import pytest

from mailchecker.ingest.parser import (
    SnapshotError,
    is_valid_hostname,
    load_snapshot,
    parse_domain_list,
)


# ---------------------------------------------------------------------------
# Tests - domain list parsing
# ---------------------------------------------------------------------------


def test_email_addresses_yield_domains():
    """Email addresses contribute their domain part."""
    result = parse_domain_list("alice@example.com\nbob@another.org")

    assert result["domains"] == ["example.com", "another.org"]
    assert result["invalid_lines"] == []


def test_bare_domains_and_separators():
    """Comma, semicolon and tab separated domain tokens are all accepted."""
    result = parse_domain_list("example.com, example.net;example.org\tmail.example.io")
    assert result["domains"] == ["example.com", "example.net", "example.org", "mail.example.io"]


def test_duplicates_and_case_collapse():
    """The same domain in different forms appears once, lowercased, in first-seen order."""
    result = parse_domain_list("B.example.com\nuser@b.example.com\nexample.com.\nEXAMPLE.COM")
    assert result["domains"] == ["b.example.com", "example.com"]


def test_comments_and_blank_lines_are_ignored():
    result = parse_domain_list("# customer list\n\n   \nexample.com\n")
    assert result["domains"] == ["example.com"]
    assert result["invalid_lines"] == []


def test_invalid_lines_are_reported():
    result = parse_domain_list("example.com\nnot a domain\n12345")

    assert result["domains"] == ["example.com"]
    assert result["invalid_lines"] == ["not a domain", "12345"]


def test_quoted_csv_tokens():
    result = parse_domain_list('"example.com","Some Company"')
    assert result["domains"] == ["example.com"]


@pytest.mark.parametrize(
    "candidate, expected",
    [
        ("example.com", True),
        ("sub-domain.example.co.uk", True),
        ("_dmarc.example.com", False),
        ("localhost", False),
        ("-bad.example.com", False),
        ("", False),
    ],
)
def test_is_valid_hostname(candidate, expected):
    assert is_valid_hostname(candidate) is expected


# ---------------------------------------------------------------------------
# Tests - snapshot loading
# ---------------------------------------------------------------------------


def test_load_csv_snapshot(tmp_path):
    path = tmp_path / "sweep.csv"
    path.write_text(
        "Domain,Status,SPF_Status\n"
        "Example.com,PASS,PASS\n"
        "other.example,FAIL,FAIL\n",
        encoding="utf-8",
    )
    snapshot = load_snapshot(path)

    assert set(snapshot) == {"example.com", "other.example"}
    assert snapshot["other.example"]["SPF_Status"] == "FAIL"


def test_load_csv_without_domain_column_raises(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Host,Status\nexample.com,PASS\n", encoding="utf-8")

    with pytest.raises(SnapshotError):
        load_snapshot(path)


def test_load_json_rows(tmp_path):
    path = tmp_path / "sweep.json"
    path.write_text(json.dumps([{"Domain": "example.com", "Status": "WARN"}]), encoding="utf-8")

    assert load_snapshot(path) == {"example.com": {"Domain": "example.com", "Status": "WARN"}}


def test_load_json_domain_checks_uses_summary(tmp_path):
    path = tmp_path / "sweep.json"
    payload = [{"domain": "example.com", "summary": {"Domain": "example.com", "Status": "PASS"}}]
    path.write_text(json.dumps(payload), encoding="utf-8")

    assert load_snapshot(path)["example.com"]["Status"] == "PASS"


def test_load_json_object_with_rows(tmp_path):
    path = tmp_path / "sweep.json"
    path.write_text(json.dumps({"rows": [{"Domain": "a.example"}]}), encoding="utf-8")
    assert list(load_snapshot(path)) == ["a.example"]


@pytest.mark.parametrize("body", ["{not json", '{"rows": 3}', "[1, 2]"])
def test_load_json_invalid_raises(tmp_path, body):
    path = tmp_path / "bad.json"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(SnapshotError):
        load_snapshot(path)
