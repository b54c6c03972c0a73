"""
Data model for Mailchecker.

Defines the status vocabulary, the per-protocol CheckResult, the per-domain
DomainCheck with its flat Summary projection, and the DnsSettings runtime
configuration object shared by the checker modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

# ---------------------------------------------------------------------------
# Status vocabulary
# ---------------------------------------------------------------------------

PASS = "PASS"
WARN = "WARN"
FAIL = "FAIL"
NOT_APPLICABLE = "N/A"

STATUSES = (PASS, WARN, FAIL, NOT_APPLICABLE)

# Severity ranking used for aggregation (higher = worse). N/A is excluded.
_STATUS_SEVERITY: dict[str, int] = {
    PASS: 0,
    WARN: 1,
    FAIL: 2,
}

# ---------------------------------------------------------------------------
# Sections, in evaluation order
# ---------------------------------------------------------------------------

SECTION_MX = "MX"
SECTION_SPF = "SPF"
SECTION_DKIM = "DKIM"
SECTION_MTA_STS = "MTA-STS"
SECTION_DMARC = "DMARC"
SECTION_TLS_RPT = "TLS-RPT"

SECTIONS = (
    SECTION_MX,
    SECTION_SPF,
    SECTION_DKIM,
    SECTION_MTA_STS,
    SECTION_DMARC,
    SECTION_TLS_RPT,
)

# Column prefix used in the flat Summary row for each section
SECTION_COLUMN_PREFIX: dict[str, str] = {
    SECTION_MX: "MX",
    SECTION_SPF: "SPF",
    SECTION_DKIM: "DKIM",
    SECTION_MTA_STS: "MTA_STS",
    SECTION_DMARC: "DMARC",
    SECTION_TLS_RPT: "TLS_RPT",
}

REASON_DOMAIN_ABSENT = "domain does not exist"

# Selectors probed when neither the caller nor the configuration names any
DEFAULT_DKIM_SELECTORS = [
    "default",
    "google",
    "selector1",
    "selector2",
    "k1",
    "dkim",
    "mail",
    "s1",
    "s2",
    "protonmail",
]


def worst_status(statuses: list[str]) -> str:
    """Return the worst status under FAIL > WARN > PASS, ignoring N/A.

    Returns N/A when no status in *statuses* is ranked.
    """
    worst = NOT_APPLICABLE
    worst_severity = -1
    for status in statuses:
        severity = _STATUS_SEVERITY.get(status)
        if severity is not None and severity > worst_severity:
            worst_severity = severity
            worst = status
    return worst


def normalise_domain(domain: str) -> str:
    """Return the comparison form of *domain*: stripped, no trailing dot, lowercase."""
    return (domain or "").strip().rstrip(".").lower()


def _freeze(value: Any) -> Any:
    """Recursively convert lists to tuples and dicts to read-only mappings."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    """Inverse of _freeze, producing JSON-serialisable structures."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# CheckResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckResult:
    """Verdict for one protocol section of one domain.

    Instances are immutable: build them with :meth:`create`, which freezes
    the evidence sequences and the ``data`` mapping.
    """

    section: str
    status: str
    details: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    info_messages: tuple[str, ...] = ()
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def create(
        cls,
        section: str,
        status: str,
        reason: str,
        details: list[str] | None = None,
        warnings: list[str] | None = None,
        info_messages: list[str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> CheckResult:
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}")
        payload = dict(data or {})
        payload["reason"] = reason
        return cls(
            section=section,
            status=status,
            details=tuple(details or ()),
            warnings=tuple(warnings or ()),
            info_messages=tuple(info_messages or ()),
            data=_freeze(payload),
        )

    @classmethod
    def not_applicable(cls, section: str, reason: str = REASON_DOMAIN_ABSENT) -> CheckResult:
        return cls.create(section, NOT_APPLICABLE, reason, details=[reason])

    @property
    def reason(self) -> str:
        return self.data.get("reason", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "section": self.section,
            "status": self.status,
            "reason": self.reason,
            "details": list(self.details),
            "warnings": list(self.warnings),
            "info_messages": list(self.info_messages),
            "data": _thaw(self.data),
        }


# ---------------------------------------------------------------------------
# Summary and DomainCheck
# ---------------------------------------------------------------------------


def _flag(value: bool | None) -> str:
    if value is None:
        return ""
    return "true" if value else "false"


@dataclass(frozen=True)
class Summary:
    """Aggregate verdict plus the named projections used by reports."""

    domain: str
    status: str
    reason: str
    section_statuses: Mapping[str, str]
    section_reasons: Mapping[str, str]
    domain_exists: bool | None = None
    has_mx: bool = False
    mx_provider: str | None = None
    spf_healthy: bool = False
    spf_lookups: int | None = None
    dkim_selectors: tuple[str, ...] = ()
    dmarc_policy: str | None = None
    dmarc_enforced: bool = False
    mta_sts_mode: str | None = None

    def to_row(self) -> dict[str, str]:
        """Return the flat row exported to CSV/JSON snapshots."""
        row: dict[str, str] = {
            "Domain": self.domain,
            "Status": self.status,
            "Reason": self.reason,
        }
        for section in SECTIONS:
            prefix = SECTION_COLUMN_PREFIX[section]
            row[f"{prefix}_Status"] = self.section_statuses.get(section, "")
            row[f"{prefix}_Reason"] = self.section_reasons.get(section, "")
        row["Domain_Exists"] = _flag(self.domain_exists)
        row["Has_MX"] = _flag(self.has_mx)
        row["MX_Provider"] = self.mx_provider or ""
        row["SPF_Healthy"] = _flag(self.spf_healthy)
        row["SPF_Lookups"] = "" if self.spf_lookups is None else str(self.spf_lookups)
        row["DKIM_Selectors"] = " ".join(self.dkim_selectors)
        row["DMARC_Policy"] = self.dmarc_policy or ""
        row["DMARC_Enforced"] = _flag(self.dmarc_enforced)
        row["MTA_STS_Mode"] = self.mta_sts_mode or ""
        return row


@dataclass(frozen=True)
class DomainCheck:
    """All six CheckResults for one domain plus the derived Summary."""

    domain: str
    results: Mapping[str, CheckResult]
    summary: Summary
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    execution_time_ms: int = 0
    errors: tuple[str, ...] = ()

    def get(self, section: str) -> CheckResult | None:
        return self.results.get(section)

    @property
    def status(self) -> str:
        return self.summary.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "checked_at": self.checked_at.isoformat(),
            "execution_time_ms": self.execution_time_ms,
            "summary": self.summary.to_row(),
            "results": [self.results[s].to_dict() for s in SECTIONS if s in self.results],
            "errors": list(self.errors),
        }


# ---------------------------------------------------------------------------
# DnsSettings
# ---------------------------------------------------------------------------


@dataclass
class DnsSettings:
    """Runtime resolver and check configuration.

    Read-only during evaluation; one instance may be shared by all workers
    of a bulk run.
    """

    resolvers: list[str] = field(default_factory=list)
    timeout_seconds: float = 10.0
    check_concurrency: int = 5
    dkim_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_DKIM_SELECTORS))
    policy_fetch_timeout: float = 10.0
    spf_max_depth: int = 10

    def get_resolvers(self) -> list[str]:
        """Return the caller-supplied resolver list (fallbacks not included)."""
        return list(self.resolvers)

    @classmethod
    def from_config(cls, config: Any) -> DnsSettings:
        """Build settings from a Config class or a Flask ``app.config`` mapping."""

        def _get(name: str, default: Any) -> Any:
            if isinstance(config, Mapping):
                return config.get(name, default)
            return getattr(config, name, default)

        return cls(
            resolvers=list(_get("DNS_SERVERS", []) or []),
            timeout_seconds=float(_get("DNS_TIMEOUT_SECONDS", 10.0)),
            check_concurrency=int(_get("CHECK_CONCURRENCY", 5)),
            dkim_selectors=list(_get("DKIM_SELECTORS", None) or DEFAULT_DKIM_SELECTORS),
            policy_fetch_timeout=float(_get("MTA_STS_FETCH_TIMEOUT", 10.0)),
            spf_max_depth=int(_get("SPF_MAX_DEPTH", 10)),
        )

    def __repr__(self) -> str:
        return (
            f"<DnsSettings resolvers={self.resolvers} timeout={self.timeout_seconds}"
            f" concurrency={self.check_concurrency}>"
        )
