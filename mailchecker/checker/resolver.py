"""
Multi-server DNS resolver with deterministic fallback.

Every query is tried against an ordered server list (caller-supplied servers
first, then two public fallbacks).  The first server that returns a
definitive answer wins, including an authoritative "no such record" or
NXDOMAIN answer; only transport failures (timeout, SERVFAIL, no response)
advance to the next server.  Outcomes are reported as a tagged
ResolvedRecordSet so callers never confuse "record absent" with "resolver
broken".
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any

import dns.exception
import dns.rdatatype
import dns.resolver

from mailchecker.models import DnsSettings

logger = logging.getLogger(__name__)

FALLBACK_SERVERS: tuple[str, ...] = ("8.8.8.8", "1.1.1.1")

DEFAULT_TIMEOUT = 10.0


class ResolveOutcome(enum.Enum):
    SUCCESS = "success"
    EMPTY_NO_ERROR = "empty"
    NXDOMAIN = "nxdomain"
    SERVFAIL = "servfail"


@dataclass(frozen=True)
class MxRecord:
    priority: int
    exchange: str

    @property
    def is_null(self) -> bool:
        """True for an RFC 7505 null MX ("0 .")."""
        return self.exchange == ""


@dataclass(frozen=True)
class ResolvedRecordSet:
    """Records returned by one resolver call plus the outcome tag."""

    name: str
    rdtype: str
    outcome: ResolveOutcome
    records: tuple[Any, ...] = ()
    error: str | None = None
    cname: str | None = None
    server: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ResolveOutcome.SUCCESS and bool(self.records)

    @property
    def exists(self) -> bool:
        """False only when the name is definitively absent."""
        return self.outcome is not ResolveOutcome.NXDOMAIN

    @property
    def failed(self) -> bool:
        return self.outcome is ResolveOutcome.SERVFAIL


class DnsCache:
    """Answer cache scoped to one bulk run.

    Thread-safe; SERVFAIL results are never stored so that a later domain
    gets a fresh attempt.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], ResolvedRecordSet] = {}

    def get(self, name: str, rdtype: str) -> ResolvedRecordSet | None:
        with self._lock:
            return self._entries.get((name.lower(), rdtype))

    def put(self, result: ResolvedRecordSet) -> None:
        if result.outcome is ResolveOutcome.SERVFAIL:
            return
        with self._lock:
            self._entries[(result.name.lower(), result.rdtype)] = result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class _TransportError(Exception):
    """A server gave no usable answer; the next server should be tried."""


def build_server_list(servers: list[str] | None) -> list[str]:
    """Return caller servers followed by the public fallbacks, de-duplicated."""
    ordered: list[str] = []
    for server in list(servers or []) + list(FALLBACK_SERVERS):
        server = server.strip()
        if server and server not in ordered:
            ordered.append(server)
    return ordered


def _is_nxdomain_error(exc: Exception) -> bool:
    if isinstance(exc, dns.resolver.NXDOMAIN):
        return True
    text = str(exc).lower()
    return "nxdomain" in text or "does not exist" in text


class DnsResolver:
    """Resolve TXT, MX and NS records against an ordered server list.

    Args:
        servers: Caller-supplied nameservers, tried before the fallbacks.
        timeout: Per-query timeout in seconds; a timeout is treated as a
            transport failure and advances the fallback chain.
        cache: Optional DnsCache shared across one bulk run.
    """

    def __init__(
        self,
        servers: list[str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        cache: DnsCache | None = None,
    ) -> None:
        self.servers: tuple[str, ...] = tuple(build_server_list(servers))
        self.timeout = float(timeout)
        self.cache = cache

    @classmethod
    def from_settings(cls, settings: DnsSettings, cache: DnsCache | None = None) -> DnsResolver:
        return cls(settings.get_resolvers(), settings.timeout_seconds, cache)

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def resolve_txt(self, name: str) -> ResolvedRecordSet:
        """Resolve TXT records, following at most one CNAME hop."""
        result = self._cached_query(name, "TXT")
        if result.outcome is ResolveOutcome.EMPTY_NO_ERROR and result.cname:
            target = result.cname
            logger.debug("TXT %s is a CNAME to %s; querying target", name, target)
            followed = self._cached_query(target, "TXT")
            return ResolvedRecordSet(
                name=name,
                rdtype="TXT",
                outcome=followed.outcome,
                records=followed.records,
                error=followed.error,
                cname=target,
                server=followed.server,
            )
        return result

    def resolve_mx(self, domain: str) -> ResolvedRecordSet:
        return self._cached_query(domain, "MX")

    def resolve_ns(self, domain: str) -> ResolvedRecordSet:
        return self._cached_query(domain, "NS")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cached_query(self, name: str, rdtype: str) -> ResolvedRecordSet:
        name = name.rstrip(".")
        if self.cache is not None:
            cached = self.cache.get(name, rdtype)
            if cached is not None:
                return cached
        result = self._query(name, rdtype)
        if self.cache is not None:
            self.cache.put(result)
        return result

    def _query(self, name: str, rdtype: str) -> ResolvedRecordSet:
        last_error: str | None = None
        for server in self.servers:
            try:
                result = self._query_server(server, name, rdtype)
            except _TransportError as exc:
                last_error = str(exc)
                logger.warning("DNS %s/%s via %s failed: %s", name, rdtype, server, exc)
                continue
            logger.debug(
                "DNS %s/%s via %s: %s (%d records)",
                name, rdtype, server, result.outcome.value, len(result.records),
            )
            return result

        logger.warning("DNS %s/%s: all %d resolvers failed", name, rdtype, len(self.servers))
        return ResolvedRecordSet(
            name=name,
            rdtype=rdtype,
            outcome=ResolveOutcome.SERVFAIL,
            error=last_error or "no resolver returned an answer",
        )

    def _make_resolver(self, server: str) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = [server]
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        return resolver

    def _query_server(self, server: str, name: str, rdtype: str) -> ResolvedRecordSet:
        resolver = self._make_resolver(server)
        try:
            answer = resolver.resolve(name, rdtype, raise_on_no_answer=False)
        except dns.resolver.NXDOMAIN:
            logger.info("NXDOMAIN for %s/%s", name, rdtype)
            return ResolvedRecordSet(
                name=name,
                rdtype=rdtype,
                outcome=ResolveOutcome.NXDOMAIN,
                error=f"Domain {name} does not exist (NXDOMAIN)",
                server=server,
            )
        except dns.resolver.NoAnswer:
            return self._empty(name, rdtype, server)
        except dns.exception.DNSException as exc:
            if _is_nxdomain_error(exc):
                return ResolvedRecordSet(
                    name=name,
                    rdtype=rdtype,
                    outcome=ResolveOutcome.NXDOMAIN,
                    error=str(exc),
                    server=server,
                )
            raise _TransportError(f"{type(exc).__name__}: {exc}") from exc

        if answer.rrset is None:
            return self._empty(name, rdtype, server, cname=_find_cname(answer))

        records = _extract_records(answer, rdtype)
        if not records:
            return self._empty(name, rdtype, server)
        return ResolvedRecordSet(
            name=name,
            rdtype=rdtype,
            outcome=ResolveOutcome.SUCCESS,
            records=tuple(records),
            server=server,
        )

    @staticmethod
    def _empty(
        name: str, rdtype: str, server: str, cname: str | None = None
    ) -> ResolvedRecordSet:
        return ResolvedRecordSet(
            name=name,
            rdtype=rdtype,
            outcome=ResolveOutcome.EMPTY_NO_ERROR,
            error=f"No {rdtype} records found for {name}",
            cname=cname,
            server=server,
        )


def _find_cname(answer: Any) -> str | None:
    """Return the first CNAME target in the raw response, if any."""
    response = getattr(answer, "response", None)
    if response is None:
        return None
    for rrset in response.answer:
        if rrset.rdtype == dns.rdatatype.CNAME:
            for rdata in rrset:
                return rdata.target.to_text().rstrip(".")
    return None


def _extract_records(answer: Any, rdtype: str) -> list[Any]:
    records: list[Any] = []
    for rdata in answer:
        if rdtype == "TXT":
            # TXT records come as multiple byte strings that need joining
            records.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
        elif rdtype == "MX":
            exchange = rdata.exchange.to_text()
            exchange = "" if exchange == "." else exchange.rstrip(".").lower()
            records.append(MxRecord(priority=int(rdata.preference), exchange=exchange))
        else:
            records.append(rdata.to_text().rstrip(".").lower())
    if rdtype == "MX":
        records.sort(key=lambda r: (r.priority, r.exchange))
    return records
