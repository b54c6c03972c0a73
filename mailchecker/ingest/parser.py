"""
Domain list and snapshot readers.

Extracts unique domains from text that may contain email addresses, plain
domain names, or mixed content, and loads previously exported sweep
summaries (CSV or JSON) into keyed snapshots for the diff engine.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from pathlib import Path
from typing import Any

from mailchecker.checker.diff_engine import build_snapshot

logger = logging.getLogger(__name__)

# Matches an email address and captures the domain part (group 1)
_EMAIL_RE = re.compile(
    r"[a-zA-Z0-9._%+\-]+@([a-zA-Z0-9.\-]+\.[a-zA-Z]{2,})"
)

# Hostname validation: must be a valid-looking domain
_HOSTNAME_RE = re.compile(
    r"^[a-z0-9]([a-z0-9\-_]*[a-z0-9])?(\.[a-z0-9]([a-z0-9\-_]*[a-z0-9])?)*\.[a-z]{2,}$"
)


class SnapshotError(ValueError):
    """Raised when a snapshot file cannot be read as CSV or JSON rows."""


def is_valid_hostname(candidate: str) -> bool:
    """Return True if *candidate* (already lowercased) looks like a domain."""
    return bool(candidate) and len(candidate) <= 253 and bool(_HOSTNAME_RE.match(candidate))


def parse_domain_list(content: str) -> dict:
    """Extract unique lowercase domain names from a text file.

    Each line is processed in two passes:

    1. **Email extraction** - scan for email addresses and capture the
       domain part (e.g. ``alice@example.com`` -> ``example.com``).
    2. **Bare domain extraction** - if no email was found, treat each
       comma/semicolon/tab-separated token as a potential domain name.

    Blank lines and ``#`` comment lines are ignored.

    Args:
        content: Raw text content of the domain list.

    Returns:
        A dict with keys:
          - ``domains``: unique, valid domain names in first-seen order.
          - ``invalid_lines``: lines where nothing could be extracted.
    """
    domains: list[str] = []
    invalid_lines: list[str] = []

    def _add(candidate: str) -> bool:
        candidate = candidate.rstrip(".")
        if not is_valid_hostname(candidate):
            return False
        if candidate not in domains:
            domains.append(candidate)
        return True

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        found_any = False

        # Pass 1: look for email addresses
        for domain in _EMAIL_RE.findall(line):
            if _add(domain.lower()):
                found_any = True

        # Pass 2: treat tokens as potential bare domain names
        if not found_any:
            for token in re.split(r"[,;\t|]+", line):
                candidate = token.strip().strip('"').strip("'").lower()
                if _add(candidate):
                    found_any = True

        if not found_any:
            invalid_lines.append(line)

    if invalid_lines:
        logger.debug("Domain list: %d line(s) without a usable domain", len(invalid_lines))

    return {
        "domains": domains,
        "invalid_lines": invalid_lines,
    }


def load_snapshot(path: str | Path) -> dict[str, dict[str, Any]]:
    """Read a sweep export into a snapshot keyed by comparison key.

    ``.json`` files may hold a list of summary rows, a list of serialised
    DomainCheck objects (their ``summary`` is used), or an object with a
    ``rows`` list.  Any other extension is read as CSV with a header row.

    Raises:
        SnapshotError: If the file is not valid CSV/JSON or holds no rows.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8-sig")

    if path.suffix.lower() == ".json":
        rows = _rows_from_json(text, path)
    else:
        rows = list(csv.DictReader(io.StringIO(text)))
        if rows and "Domain" not in rows[0]:
            raise SnapshotError(f"{path}: CSV has no Domain column")

    snapshot = build_snapshot(rows)
    logger.info("Loaded snapshot %s: %d domain(s)", path, len(snapshot))
    return snapshot


def _rows_from_json(text: str, path: Path) -> list[dict[str, Any]]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"{path}: invalid JSON ({exc})") from exc

    if isinstance(payload, dict):
        payload = payload.get("rows")
    if not isinstance(payload, list):
        raise SnapshotError(f"{path}: expected a list of rows")

    rows: list[dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            raise SnapshotError(f"{path}: row is not an object: {item!r}")
        # Serialised DomainCheck objects carry their flat row under "summary"
        rows.append(item["summary"] if isinstance(item.get("summary"), dict) else item)
    return rows
