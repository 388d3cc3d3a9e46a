"""
modules/reconciliation/reconcile.py

Offline repair of invoices.remaining_balance.

Historical bugs left stored balances that disagree with
grand_total - returns - payments. The pass recomputes the expected value,
rewrites the rows that drifted, and appends one audit record per touched
invoice. Rows that are already right are never written, so running it again
is a no-op.

Two separate rules, applied in this order:
  clamp    remaining > grand_total, nothing paid, excess < 1.0  -> grand_total
  correct  |remaining - expected| > 0.02                        -> expected
A clamped value that still disagrees with `expected` (returns exist) is
corrected in the same pass.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Optional

from ...constants import (
    ISSUE_BALANCE_EXCEEDS_TOTAL,
    ISSUE_NEGATIVE_BALANCE_UNPAID,
    RECONCILE_CLAMP_LIMIT,
    RECONCILE_DRIFT_TOLERANCE,
)
from ...database.repositories import (
    BalanceAuditRepo,
    CustomersRepo,
    InvoicesRepo,
    MaintenanceRepo,
)
from ...utils.helpers import round2, safe_number
from ..billing.calculations import payment_status, remaining_balance
from ..billing.errors import MaintenanceModeActive
from .logging_utils import get_logger, log_event

__all__ = [
    "RULE_CLAMP",
    "RULE_CORRECT",
    "BalanceCorrection",
    "ReconciliationSummary",
    "classify_issue",
    "plan_balance_correction",
    "ReconciliationPass",
]

RULE_CLAMP = "clamp"
RULE_CORRECT = "correct"

_OP = "reconcile"


@dataclass(frozen=True)
class BalanceCorrection:
    invoice_id: int
    old_balance: float
    new_balance: float
    expected_balance: float
    grand_total: float
    payment_amount: float
    returns_total: float
    payment_status: str
    issue_tag: Optional[str]
    rules: tuple[str, ...]


@dataclass
class ReconciliationSummary:
    scanned: int = 0
    corrected: int = 0
    audit_records: int = 0
    failures: int = 0
    customers_updated: int = 0
    dry_run: bool = False
    corrections: list[BalanceCorrection] = field(default_factory=list)
    failed_invoice_ids: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failures == 0


def classify_issue(remaining, grand_total, payment_amount) -> Optional[str]:
    """Anomaly tag for an audit record, from the stored (pre-fix) values."""
    rem = safe_number(remaining)
    if rem > safe_number(grand_total):
        return ISSUE_BALANCE_EXCEEDS_TOTAL
    if rem < 0 and safe_number(payment_amount) == 0:
        return ISSUE_NEGATIVE_BALANCE_UNPAID
    return None


def plan_balance_correction(
    *,
    invoice_id: int,
    grand_total,
    payment_amount,
    remaining_balance_stored,
    returns_total=0.0,
) -> Optional[BalanceCorrection]:
    """
    Decide whether one invoice needs its remaining balance rewritten.
    Returns None when the stored value is within tolerance.
    """
    grand = safe_number(grand_total)
    paid = safe_number(payment_amount)
    stored = safe_number(remaining_balance_stored)
    returns = safe_number(returns_total)
    expected = remaining_balance(grand, paid, returns)

    rules: list[str] = []
    new_balance = stored
    if stored > grand and paid == 0 and (stored - grand) < RECONCILE_CLAMP_LIMIT:
        new_balance = round2(grand)
        rules.append(RULE_CLAMP)
        if abs(new_balance - expected) > RECONCILE_DRIFT_TOLERANCE:
            new_balance = expected
            rules.append(RULE_CORRECT)
    elif abs(stored - expected) > RECONCILE_DRIFT_TOLERANCE:
        new_balance = expected
        rules.append(RULE_CORRECT)

    if not rules:
        return None

    return BalanceCorrection(
        invoice_id=int(invoice_id),
        old_balance=stored,
        new_balance=new_balance,
        expected_balance=expected,
        grand_total=grand,
        payment_amount=paid,
        returns_total=round2(returns),
        payment_status=payment_status(new_balance, paid),
        issue_tag=classify_issue(stored, grand, paid),
        rules=tuple(rules),
    )


class ReconciliationPass:
    """
    Runs the repair over every invoice (optionally a date range) while
    holding the maintenance flag. Each invoice is written in its own
    transaction; a failing row is logged, counted and skipped.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        audit: BalanceAuditRepo | None = None,
        logger: logging.Logger | None = None,
        holder: str = "reconciliation",
    ):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.invoices = InvoicesRepo(conn)
        self.customers = CustomersRepo(conn)
        self.maintenance = MaintenanceRepo(conn)
        self.audit = audit if audit is not None else BalanceAuditRepo(conn)
        self._log = logger or get_logger()
        self.holder = holder

    def run(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        *,
        dry_run: bool = False,
    ) -> ReconciliationSummary:
        # a dry run writes nothing, so it does not pause live billing
        if not dry_run and not self.maintenance.acquire(self.holder):
            current = self.maintenance.holder()
            log_event(self._log, _OP, "start", "maintenance flag already held",
                      {"holder": current}, level=logging.WARNING)
            raise MaintenanceModeActive(current)

        summary = ReconciliationSummary(dry_run=dry_run)
        log_event(self._log, _OP, "start", "reconciliation started",
                  {"date_from": date_from, "date_to": date_to, "dry_run": dry_run})
        try:
            for row in self.invoices.list_for_reconciliation(date_from, date_to):
                summary.scanned += 1
                self._reconcile_row(row, summary)
            self._rollup_customers(summary)
        finally:
            if not dry_run:
                self.maintenance.release()

        log_event(
            self._log, _OP, "finish", "reconciliation finished",
            {
                "scanned": summary.scanned,
                "corrected": summary.corrected,
                "audit_records": summary.audit_records,
                "failures": summary.failures,
                "customers_updated": summary.customers_updated,
                "dry_run": dry_run,
            },
            level=logging.WARNING if summary.failures else logging.INFO,
        )
        return summary

    def _reconcile_row(self, row: sqlite3.Row, summary: ReconciliationSummary) -> None:
        invoice_id = int(row["id"])
        try:
            fix = plan_balance_correction(
                invoice_id=invoice_id,
                grand_total=row["grand_total"],
                payment_amount=row["payment_amount"],
                remaining_balance_stored=row["remaining_balance"],
                returns_total=row["returns_total"],
            )
            if fix is None:
                return
            if not summary.dry_run:
                with self.conn:
                    self.invoices.update_balance(
                        invoice_id,
                        remaining_balance=fix.new_balance,
                        payment_status=fix.payment_status,
                    )
                    self.audit.append(
                        invoice_id=invoice_id,
                        old_balance=fix.old_balance,
                        new_balance=fix.new_balance,
                        grand_total=fix.grand_total,
                        payment_amount=fix.payment_amount,
                        issue_tag=fix.issue_tag,
                    )
                summary.audit_records += 1
        except (sqlite3.Error, ValueError, TypeError) as exc:
            summary.failures += 1
            summary.failed_invoice_ids.append(invoice_id)
            log_event(self._log, _OP, "invoice", "invoice skipped after error",
                      {"invoice_id": invoice_id, "error": str(exc)}, level=logging.ERROR)
            return

        summary.corrected += 1
        summary.corrections.append(fix)
        log_event(
            self._log, _OP, "invoice",
            "would correct balance" if summary.dry_run else "balance corrected",
            {
                "invoice_id": invoice_id,
                "bill_number": row["bill_number"],
                "old_balance": fix.old_balance,
                "new_balance": fix.new_balance,
                "expected": fix.expected_balance,
                "rules": list(fix.rules),
                "issue_tag": fix.issue_tag,
            },
        )

    def _rollup_customers(self, summary: ReconciliationSummary) -> None:
        try:
            with self.conn:
                changes = self.customers.recompute_balances(dry_run=summary.dry_run)
        except sqlite3.Error as exc:
            summary.failures += 1
            log_event(self._log, _OP, "customers", "customer roll-up failed",
                      {"error": str(exc)}, level=logging.ERROR)
            return
        summary.customers_updated = len(changes)
        if changes:
            log_event(self._log, _OP, "customers", "customer balances refreshed",
                      {"count": len(changes), "dry_run": summary.dry_run})
