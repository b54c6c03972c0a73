"""
Command-line sweep for Mailchecker.

Checks one or more domains and prints the flat summary rows (CSV) or the
full serialised results (JSON) to stdout.  Can also compare two previously
exported sweeps.  Designed to run from cron or by hand.

USAGE
=====
  # Check a single domain
  python sweep.py --domain example.com

  # Check every domain (or email address) listed in a file
  python sweep.py --file domains.txt > today.csv

  # Probe extra DKIM selectors and use a specific resolver
  python sweep.py --domain example.com --selector s2048 --dns-server 9.9.9.9

  # Full JSON output
  python sweep.py --file domains.txt --json > today.json

  # Compare two exports (CSV or JSON)
  python sweep.py --diff yesterday.csv today.csv

  # Enable debug-level logging
  python sweep.py --domain example.com --verbose

Log output goes to stderr so stdout carries only the report.

EXIT CODES
==========
  0 - Success (all checks completed, even if individual checks reported issues)
  1 - Fatal error (e.g. no domains given, unreadable input file)
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from datetime import datetime, timezone


# ---------------------------------------------------------------------------
# Argument parsing (done before package import so --help stays fast)
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run MX/SPF/DKIM/DMARC/MTA-STS/TLS-RPT checks for domains.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--domain",
        metavar="HOSTNAME",
        action="append",
        default=[],
        help="Domain to check. May be repeated.",
    )
    parser.add_argument(
        "--file",
        metavar="PATH",
        default=None,
        help="Text file of domains and/or email addresses, one per line.",
    )
    parser.add_argument(
        "--selector",
        metavar="NAME",
        action="append",
        default=[],
        help="DKIM selector to probe instead of the configured defaults. May be repeated.",
    )
    parser.add_argument(
        "--dns-server",
        metavar="IP",
        action="append",
        default=[],
        help="Resolver to query before the public fallbacks. May be repeated.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of domains checked concurrently.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print JSON instead of CSV.",
    )
    parser.add_argument(
        "--diff",
        nargs=2,
        metavar=("OLD", "NEW"),
        default=None,
        help="Compare two exported sweeps instead of running checks.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable DEBUG-level logging output.",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool) -> logging.Logger:
    """Configure root logger for the sweep script.

    Args:
        verbose: If True, set level to DEBUG; otherwise INFO.

    Returns:
        A logger instance named after this module.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    return logging.getLogger("sweep")


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run_diff(args: argparse.Namespace, logger: logging.Logger) -> int:
    from mailchecker.checker.diff_engine import diff_snapshots, summarize_changes
    from mailchecker.ingest.parser import SnapshotError, load_snapshot

    old_path, new_path = args.diff
    try:
        old = load_snapshot(old_path)
        new = load_snapshot(new_path)
    except (OSError, SnapshotError):
        logger.exception("FATAL: Failed to load snapshots.")
        return 1

    records = diff_snapshots(old, new)
    summary = summarize_changes(records)

    if args.json:
        json.dump(
            {"summary": summary, "changes": [r.to_dict() for r in records]},
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
    else:
        for record in records:
            if record.category is None:
                print(f"{record.change_type:<8} {record.domain}")
                continue
            fields = ", ".join(
                f"{c.field}: {c.old_value!r} -> {c.new_value!r}" for c in record.changes
            )
            print(f"{record.change_type:<8} {record.domain:<40} {record.category:<8} {record.trend:<9} {fields}")

    logger.info(
        "Diff complete: new=%d removed=%d changed=%d (improved=%d regressed=%d mixed=%d)",
        summary["new"],
        summary["removed"],
        summary["changed"],
        summary["improved"],
        summary["regressed"],
        summary["mixed"],
    )
    return 0


def _collect_domains(args: argparse.Namespace, logger: logging.Logger) -> list[str] | None:
    from mailchecker.ingest.parser import parse_domain_list

    domains = list(args.domain)
    if args.file:
        try:
            with open(args.file, encoding="utf-8-sig") as fh:
                parsed = parse_domain_list(fh.read())
        except OSError:
            logger.exception("FATAL: Failed to read domain file '%s'.", args.file)
            return None
        for line in parsed["invalid_lines"]:
            logger.warning("No domain found in line: %s", line)
        domains.extend(parsed["domains"])
    return domains


def _run_checks(args: argparse.Namespace, logger: logging.Logger) -> int:
    from mailchecker.checker.engine import check_domains
    from mailchecker.config import Config
    from mailchecker.models import DnsSettings, normalise_domain

    domains = _collect_domains(args, logger)
    if domains is None:
        return 1
    if not domains:
        logger.error("No domains to check. Use --domain or --file.")
        return 1

    settings = DnsSettings.from_config(Config)
    if args.dns_server:
        settings.resolvers = list(args.dns_server)

    checks = check_domains(
        domains,
        selectors=args.selector or None,
        settings=settings,
        max_workers=args.workers,
    )

    for check in checks:
        statuses = check.summary.section_statuses
        logger.info(
            "DONE  %-40s  overall=%-4s  mx=%-4s  spf=%-4s  dkim=%-4s  sts=%-4s  dmarc=%-4s  tlsrpt=%-4s  elapsed=%dms",
            check.domain,
            check.status,
            statuses.get("MX", ""),
            statuses.get("SPF", ""),
            statuses.get("DKIM", ""),
            statuses.get("MTA-STS", ""),
            statuses.get("DMARC", ""),
            statuses.get("TLS-RPT", ""),
            check.execution_time_ms,
        )

    if args.json:
        json.dump([c.to_dict() for c in checks], sys.stdout, indent=2)
        sys.stdout.write("\n")
    elif checks:
        rows = [c.summary.to_row() for c in checks]
        writer = csv.DictWriter(sys.stdout, fieldnames=list(rows[0]))
        writer.writeheader()
        writer.writerows(rows)

    failed = len({normalise_domain(d) for d in domains}) - len(checks)
    if failed:
        logger.warning("%d domain(s) could not be checked.", failed)
    return 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Execute a sweep or a diff.

    Returns:
        Integer exit code: 0 for success, 1 for fatal error.
    """
    args = _parse_args(argv)
    logger = _configure_logging(args.verbose)

    run_start = datetime.now(timezone.utc)
    logger.info("=== sweep.py started at %s ===", run_start.isoformat())

    if args.diff:
        code = _run_diff(args, logger)
    else:
        code = _run_checks(args, logger)

    elapsed = (datetime.now(timezone.utc) - run_start).total_seconds()
    logger.info("=== Run complete: exit=%d  total_elapsed=%.1fs ===", code, elapsed)
    return code


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
