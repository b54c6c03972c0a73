"""
Shared pytest fixtures for the Mailchecker test suite.

No test touches the network: checker modules receive a FakeResolver that
answers from in-memory tables, and the resolver/MTA-STS tests patch
dnspython and ``requests.get`` directly.
"""

from __future__ import annotations

import threading

import pytest

from mailchecker import create_app
from mailchecker.checker.resolver import MxRecord, ResolvedRecordSet, ResolveOutcome


# ---------------------------------------------------------------------------
# Test configuration
# ---------------------------------------------------------------------------


class TestConfig:
    """Minimal Flask config for automated testing."""

    TESTING = True
    SECRET_KEY = "test-secret-key-not-for-production"
    DNS_SERVERS: list[str] = []
    DNS_TIMEOUT_SECONDS = 2.0
    CHECK_CONCURRENCY = 2
    DKIM_SELECTORS = ["default"]
    MTA_STS_FETCH_TIMEOUT = 2.0
    SPF_MAX_DEPTH = 10
    MAX_BULK_DOMAINS = 3


# ---------------------------------------------------------------------------
# Fake resolver
# ---------------------------------------------------------------------------


class FakeResolver:
    """In-memory stand-in for DnsResolver.

    Args:
        txt: name -> list of TXT strings.
        mx: domain -> list of (priority, exchange) tuples; "" is a null MX.
        ns: domain -> list of nameservers.  Names without an entry answer
            with a default nameserver so that domains exist unless listed
            in *nxdomain*.
        nxdomain: names that do not exist.
        servfail: names, or (name, rdtype) pairs, whose queries fail.
    """

    def __init__(
        self,
        txt: dict | None = None,
        mx: dict | None = None,
        ns: dict | None = None,
        nxdomain: tuple | list | set = (),
        servfail: tuple | list | set = (),
    ) -> None:
        self.txt = {k.lower(): v for k, v in (txt or {}).items()}
        self.mx = {k.lower(): v for k, v in (mx or {}).items()}
        self.ns = {k.lower(): v for k, v in (ns or {}).items()}
        self.nxdomain = {n.lower() for n in nxdomain}
        self.servfail = set(servfail)
        self.queries: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def _answer(self, name: str, rdtype: str, records) -> ResolvedRecordSet:
        name = name.rstrip(".").lower()
        with self._lock:
            self.queries.append((name, rdtype))
        if name in self.nxdomain:
            return ResolvedRecordSet(name, rdtype, ResolveOutcome.NXDOMAIN, error="NXDOMAIN")
        if name in self.servfail or (name, rdtype) in self.servfail:
            return ResolvedRecordSet(name, rdtype, ResolveOutcome.SERVFAIL, error="SERVFAIL")
        if records:
            return ResolvedRecordSet(name, rdtype, ResolveOutcome.SUCCESS, records=tuple(records))
        return ResolvedRecordSet(name, rdtype, ResolveOutcome.EMPTY_NO_ERROR)

    def resolve_txt(self, name: str) -> ResolvedRecordSet:
        return self._answer(name, "TXT", self.txt.get(name.rstrip(".").lower()))

    def resolve_mx(self, domain: str) -> ResolvedRecordSet:
        entries = self.mx.get(domain.rstrip(".").lower()) or []
        records = sorted(
            (MxRecord(priority=p, exchange=e) for p, e in entries),
            key=lambda r: (r.priority, r.exchange),
        )
        return self._answer(domain, "MX", records)

    def resolve_ns(self, domain: str) -> ResolvedRecordSet:
        key = domain.rstrip(".").lower()
        return self._answer(domain, "NS", self.ns.get(key, ["ns1.example.net"]))

    def count(self, name: str, rdtype: str = "TXT") -> int:
        return self.queries.count((name.lower(), rdtype))


@pytest.fixture
def make_resolver():
    """Return the FakeResolver class so tests can build resolvers inline."""
    return FakeResolver


# ---------------------------------------------------------------------------
# Flask fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def app():
    """Create a Flask application instance configured for testing."""
    flask_app = create_app(TestConfig)
    yield flask_app


@pytest.fixture(scope="function")
def client(app):
    """Return a Flask test client."""
    return app.test_client()
