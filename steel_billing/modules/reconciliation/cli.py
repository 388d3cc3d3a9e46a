"""
Maintenance command: repair drifted invoice balances.

    steel-billing-reconcile [--db PATH] [--from YYYY-MM-DD] [--to YYYY-MM-DD]
                            [--dry-run] [--log-file PATH]

Exit codes: 0 completed, 1 persistence failure (including skipped rows and a
held maintenance flag), 2 bad arguments.
"""
from __future__ import annotations

import argparse
import sqlite3
import sys
from datetime import datetime
from typing import Optional, Sequence

from ...database import get_connection
from ...utils.loggers import get_logger as get_app_logger
from ..billing.errors import MaintenanceModeActive
from .logging_utils import get_logger
from .reconcile import ReconciliationPass, ReconciliationSummary

# console logging for the package; the pass keeps its own JSON-lines file
_log = get_app_logger()

EXIT_OK = 0
EXIT_FAILURE = 1


def _iso_date(text: str) -> str:
    try:
        return datetime.strptime(text, "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{text}' (expected YYYY-MM-DD)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="steel-billing-reconcile",
        description="Recompute invoice remaining balances and log every correction.",
    )
    p.add_argument("--db", dest="db_path", default=None,
                   help="SQLite database file (default: the application database)")
    p.add_argument("--from", dest="date_from", type=_iso_date, default=None,
                   help="only invoices dated on/after this day (YYYY-MM-DD)")
    p.add_argument("--to", dest="date_to", type=_iso_date, default=None,
                   help="only invoices dated on/before this day (YYYY-MM-DD)")
    p.add_argument("--dry-run", action="store_true",
                   help="report what would change without writing anything")
    p.add_argument("--log-file", default=None,
                   help="JSON-lines log file (default: logs/reconciliation.log)")
    return p


def format_summary(summary: ReconciliationSummary) -> str:
    mode = " (dry run, nothing written)" if summary.dry_run else ""
    lines = [
        f"Reconciliation complete{mode}",
        f"  invoices scanned:    {summary.scanned}",
        f"  invoices corrected:  {summary.corrected}",
        f"  audit records:       {summary.audit_records}",
        f"  customers updated:   {summary.customers_updated}",
        f"  failures:            {summary.failures}",
    ]
    if summary.failed_invoice_ids:
        lines.append("  failed invoice ids:  " + ", ".join(str(i) for i in summary.failed_invoice_ids))
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.date_from and args.date_to and args.date_from > args.date_to:
        print("error: --from must not be after --to", file=sys.stderr)
        return 2

    logger = get_logger(args.log_file)
    _log.info("Reconciling %s%s", args.db_path or "the application database",
              " (dry run)" if args.dry_run else "")

    try:
        conn = get_connection(args.db_path)
    except sqlite3.Error as exc:
        print(f"error: cannot open database: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        summary = ReconciliationPass(conn, logger=logger).run(
            args.date_from, args.date_to, dry_run=args.dry_run
        )
    except MaintenanceModeActive as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except sqlite3.Error as exc:
        print(f"error: reconciliation aborted: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        conn.close()

    print(format_summary(summary))
    return EXIT_OK if summary.ok else EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
