"""
Unit tests for mailchecker/checker/resolver.py

All dns.resolver calls are mocked so no real network activity occurs.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import dns.exception
import dns.rdatatype
import dns.resolver
import pytest

from mailchecker.checker.resolver import (
    FALLBACK_SERVERS,
    DnsCache,
    DnsResolver,
    ResolveOutcome,
    build_server_list,
)
from mailchecker.models import DnsSettings


# ---------------------------------------------------------------------------
# Helpers: fake dns.resolver answer objects
# ---------------------------------------------------------------------------


class _RRset(list):
    def __init__(self, rdtype, items):
        super().__init__(items)
        self.rdtype = rdtype


class _FakeAnswer:
    """Minimal stand-in for dns.resolver.Answer."""

    def __init__(self, rdatas=(), cname: str | None = None):
        self._rdatas = list(rdatas)
        self.rrset = self._rdatas or None
        self.response = MagicMock()
        self.response.answer = []
        if cname:
            target = MagicMock()
            target.target.to_text.return_value = cname + "."
            self.response.answer.append(_RRset(dns.rdatatype.CNAME, [target]))

    def __iter__(self):
        return iter(self._rdatas)


def _txt(*chunks: str) -> MagicMock:
    rdata = MagicMock()
    rdata.strings = [c.encode() for c in chunks]
    return rdata


def _mx(preference: int, exchange: str) -> MagicMock:
    rdata = MagicMock()
    rdata.preference = preference
    rdata.exchange.to_text.return_value = exchange
    return rdata


_PATCH_RESOLVER = "dns.resolver.Resolver"


# ---------------------------------------------------------------------------
# Tests - server list
# ---------------------------------------------------------------------------


def test_server_list_appends_fallbacks():
    assert build_server_list(["9.9.9.9"]) == ["9.9.9.9", *FALLBACK_SERVERS]


def test_server_list_deduplicates_and_keeps_caller_order():
    assert build_server_list(["1.1.1.1", "9.9.9.9"]) == ["1.1.1.1", "9.9.9.9", "8.8.8.8"]


def test_server_list_without_caller_servers_uses_fallbacks():
    assert build_server_list(None) == list(FALLBACK_SERVERS)


def test_from_settings_uses_configured_servers_and_timeout():
    resolver = DnsResolver.from_settings(DnsSettings(resolvers=["10.0.0.53"], timeout_seconds=3))
    assert resolver.servers[0] == "10.0.0.53"
    assert resolver.timeout == 3.0


# ---------------------------------------------------------------------------
# Tests - successful resolution
# ---------------------------------------------------------------------------


def test_txt_chunks_are_joined():
    """Multi-string TXT records are concatenated without separators."""
    with patch(_PATCH_RESOLVER) as MockResolver:
        MockResolver.return_value.resolve.return_value = _FakeAnswer([_txt("v=spf1 ", "-all")])
        result = DnsResolver().resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.SUCCESS
    assert result.records == ("v=spf1 -all",)
    assert result.server == "8.8.8.8"
    assert result.ok


def test_mx_records_sorted_and_normalised():
    answer = _FakeAnswer([_mx(20, "ALT.mx.example.com."), _mx(10, "mx.example.com.")])
    with patch(_PATCH_RESOLVER) as MockResolver:
        MockResolver.return_value.resolve.return_value = answer
        result = DnsResolver().resolve_mx("example.com")

    assert [(r.priority, r.exchange) for r in result.records] == [
        (10, "mx.example.com"),
        (20, "alt.mx.example.com"),
    ]


def test_null_mx_record_detected():
    with patch(_PATCH_RESOLVER) as MockResolver:
        MockResolver.return_value.resolve.return_value = _FakeAnswer([_mx(0, ".")])
        result = DnsResolver().resolve_mx("example.com")

    assert len(result.records) == 1
    assert result.records[0].is_null


def test_query_uses_one_nameserver_per_attempt():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.return_value = _FakeAnswer([_txt("hello")])
        DnsResolver(["10.0.0.53"], timeout=4).resolve_txt("example.com")

    MockResolver.assert_called_with(configure=False)
    assert instance.nameservers == ["10.0.0.53"]
    assert instance.lifetime == 4.0


# ---------------------------------------------------------------------------
# Tests - fallback chain
# ---------------------------------------------------------------------------


def test_timeout_advances_to_next_server():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = [dns.exception.Timeout(), _FakeAnswer([_txt("ok")])]
        result = DnsResolver(["10.0.0.53"]).resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.SUCCESS
    assert result.server == "8.8.8.8"
    assert instance.resolve.call_count == 2


def test_nxdomain_is_definitive_and_stops_chain():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = dns.resolver.NXDOMAIN()
        result = DnsResolver(["10.0.0.53"]).resolve_ns("missing.example")

    assert result.outcome is ResolveOutcome.NXDOMAIN
    assert not result.exists
    assert instance.resolve.call_count == 1


def test_no_answer_is_definitive_empty():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = dns.resolver.NoAnswer()
        result = DnsResolver().resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.EMPTY_NO_ERROR
    assert result.records == ()
    assert result.exists
    assert instance.resolve.call_count == 1


def test_empty_rrset_is_empty_no_error():
    with patch(_PATCH_RESOLVER) as MockResolver:
        MockResolver.return_value.resolve.return_value = _FakeAnswer([])
        result = DnsResolver().resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.EMPTY_NO_ERROR


def test_all_servers_failing_yields_servfail():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = dns.exception.Timeout()
        result = DnsResolver(["10.0.0.53"]).resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.SERVFAIL
    assert result.failed
    assert result.error
    assert instance.resolve.call_count == 3


def test_no_nameservers_error_is_transport_failure():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = [dns.resolver.NoNameservers(), _FakeAnswer([_txt("x")])]
        result = DnsResolver().resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.SUCCESS
    assert result.server == "1.1.1.1"


# ---------------------------------------------------------------------------
# Tests - CNAME
# ---------------------------------------------------------------------------


def test_txt_follows_single_cname_hop():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = [
            _FakeAnswer([], cname="target.example.net"),
            _FakeAnswer([_txt("v=DMARC1; p=reject")]),
        ]
        result = DnsResolver().resolve_txt("_dmarc.example.com")

    assert result.outcome is ResolveOutcome.SUCCESS
    assert result.records == ("v=DMARC1; p=reject",)
    assert result.cname == "target.example.net"
    assert result.name == "_dmarc.example.com"
    assert instance.resolve.call_args_list[1].args[:2] == ("target.example.net", "TXT")


def test_cname_is_followed_only_once():
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = [
            _FakeAnswer([], cname="hop1.example.net"),
            _FakeAnswer([], cname="hop2.example.net"),
        ]
        result = DnsResolver().resolve_txt("example.com")

    assert result.outcome is ResolveOutcome.EMPTY_NO_ERROR
    assert result.cname == "hop1.example.net"
    assert instance.resolve.call_count == 2


# ---------------------------------------------------------------------------
# Tests - cache
# ---------------------------------------------------------------------------


def test_cache_serves_repeated_queries():
    cache = DnsCache()
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.return_value = _FakeAnswer([_txt("v=spf1 -all")])
        resolver = DnsResolver(cache=cache)
        first = resolver.resolve_txt("example.com")
        second = resolver.resolve_txt("EXAMPLE.com.")

    assert first == second
    assert instance.resolve.call_count == 1
    assert len(cache) == 1


def test_cache_never_stores_servfail():
    cache = DnsCache()
    with patch(_PATCH_RESOLVER) as MockResolver:
        instance = MockResolver.return_value
        instance.resolve.side_effect = dns.exception.Timeout()
        resolver = DnsResolver(cache=cache)
        resolver.resolve_txt("example.com")
        resolver.resolve_txt("example.com")

    assert len(cache) == 0
    assert instance.resolve.call_count == 4


@pytest.mark.parametrize("rdtype", ["TXT", "MX", "NS"])
def test_nxdomain_for_every_record_type(rdtype):
    with patch(_PATCH_RESOLVER) as MockResolver:
        MockResolver.return_value.resolve.side_effect = dns.resolver.NXDOMAIN()
        resolver = DnsResolver()
        method = {"TXT": resolver.resolve_txt, "MX": resolver.resolve_mx, "NS": resolver.resolve_ns}[rdtype]
        result = method("missing.example")

    assert result.outcome is ResolveOutcome.NXDOMAIN
