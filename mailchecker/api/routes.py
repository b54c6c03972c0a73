"""
API blueprint routes.

Provides JSON endpoints for on-demand domain checks, bulk checks, snapshot
diffs, and application health.

Malformed requests return ``{"error": ...}`` with status 400.
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import current_app, jsonify, request

from mailchecker.api import bp
from mailchecker.checker.diff_engine import build_snapshot, diff_snapshots, summarize_changes
from mailchecker.checker.engine import check_domain, check_domains
from mailchecker.ingest.parser import is_valid_hostname
from mailchecker.models import DnsSettings, normalise_domain


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _bad_request(message: str):
    return jsonify({"error": message}), 400


def _settings() -> DnsSettings:
    return DnsSettings.from_config(current_app.config)


def _parse_selectors(raw) -> list[str] | None:
    """Accept a comma-separated string or a list; return None when empty."""
    if raw is None:
        return None
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, list):
        items = [str(item) for item in raw]
    else:
        raise ValueError("selectors must be a list or comma-separated string")
    selectors = [s.strip() for s in items if s.strip()]
    return selectors or None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@bp.route("/health")
def health():
    """Health-check endpoint."""
    return jsonify(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "Mailchecker",
        }
    )


@bp.route("/check/<domain>")
def check_single(domain: str):
    """Run all six checks for one domain and return the DomainCheck."""
    hostname = normalise_domain(domain)
    if not is_valid_hostname(hostname):
        return _bad_request(f"Invalid domain: {domain}")

    try:
        selectors = _parse_selectors(request.args.get("selectors"))
    except ValueError as exc:
        return _bad_request(str(exc))

    result = check_domain(hostname, selectors=selectors, settings=_settings())
    return jsonify(result.to_dict())


@bp.route("/check", methods=["POST"])
def check_bulk():
    """Check a list of domains concurrently.

    Request body: ``{"domains": ["a.com", ...], "selectors": [...]}``.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _bad_request("Request body must be a JSON object")

    raw_domains = payload.get("domains")
    if not isinstance(raw_domains, list) or not raw_domains:
        return _bad_request("'domains' must be a non-empty list")

    max_domains = current_app.config.get("MAX_BULK_DOMAINS", 500)
    if len(raw_domains) > max_domains:
        return _bad_request(f"Too many domains (max {max_domains})")

    hostnames = [normalise_domain(str(d)) for d in raw_domains]
    invalid = [h for h in hostnames if not is_valid_hostname(h)]
    if invalid:
        return _bad_request(f"Invalid domain(s): {', '.join(invalid)}")

    try:
        selectors = _parse_selectors(payload.get("selectors"))
    except ValueError as exc:
        return _bad_request(str(exc))

    checks = check_domains(hostnames, selectors=selectors, settings=_settings())
    return jsonify(
        {
            "count": len(checks),
            "results": [c.to_dict() for c in checks],
        }
    )


@bp.route("/diff", methods=["POST"])
def diff():
    """Compare two lists of summary rows.

    Request body: ``{"old": [rows], "new": [rows]}``.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _bad_request("Request body must be a JSON object")

    old_rows = payload.get("old")
    new_rows = payload.get("new")
    if not isinstance(old_rows, list) or not isinstance(new_rows, list):
        return _bad_request("'old' and 'new' must be lists of rows")
    if not all(isinstance(r, dict) for r in old_rows + new_rows):
        return _bad_request("Every row must be a JSON object")

    records = diff_snapshots(build_snapshot(old_rows), build_snapshot(new_rows))
    return jsonify(
        {
            "summary": summarize_changes(records),
            "changes": [r.to_dict() for r in records],
        }
    )
