# tests/test_reconciliation.py

from __future__ import annotations

import json
import sqlite3

import pytest

from steel_billing.database.repositories import BalanceAuditRepo, CustomersRepo, MaintenanceRepo
from steel_billing.modules.billing import MaintenanceModeActive
from steel_billing.modules.reconciliation import ReconciliationPass, plan_balance_correction
from steel_billing.modules.reconciliation.logging_utils import get_logger
from steel_billing.modules.reconciliation.reconcile import RULE_CLAMP, RULE_CORRECT


@pytest.fixture()
def log_file(tmp_path):
    return tmp_path / "reconciliation.log"


@pytest.fixture()
def reconcile(conn, log_file):
    def _run(*args, **kw):
        return ReconciliationPass(conn, logger=get_logger(str(log_file))).run(*args, **kw)
    return _run


def _balance(conn: sqlite3.Connection, invoice_id: int) -> float:
    return conn.execute("SELECT remaining_balance FROM invoices WHERE id=?", (invoice_id,)).fetchone()[0]


def _audit_rows(conn: sqlite3.Connection):
    return conn.execute("SELECT * FROM invoice_balance_audit ORDER BY id").fetchall()


# ----------------- pure decision -----------------

def _plan(grand, paid, stored, returns=0.0):
    return plan_balance_correction(
        invoice_id=1, grand_total=grand, payment_amount=paid,
        remaining_balance_stored=stored, returns_total=returns,
    )


def test_small_excess_without_payments_is_clamped():
    fix = _plan(500, 0, 500.5)
    assert fix.new_balance == 500.0
    assert fix.rules == (RULE_CLAMP,)
    assert fix.issue_tag == "BALANCE_EXCEEDS_TOTAL"


def test_drift_is_corrected_to_expected():
    fix = _plan(1000, 400, 100)
    assert fix.new_balance == 600.0
    assert fix.rules == (RULE_CORRECT,)
    assert fix.issue_tag is None
    assert fix.payment_status == "partial"


def test_negative_unpaid_balance_is_tagged():
    fix = _plan(1000, 0, -50)
    assert fix.new_balance == 1000.0
    assert fix.issue_tag == "NEGATIVE_BALANCE_UNPAID"


def test_clamp_falls_through_when_returns_exist():
    fix = _plan(1000, 0, 1000.5, returns=300)
    assert fix.new_balance == 700.0
    assert fix.rules == (RULE_CLAMP, RULE_CORRECT)


@pytest.mark.parametrize("stored", [600.0, 600.01, 599.99])
def test_within_tolerance_is_left_alone(stored):
    assert _plan(1000, 400, stored) is None


def test_overpaid_invoice_expects_zero():
    fix = _plan(1000, 1200, 15)
    assert fix.new_balance == 0.0
    assert fix.payment_status == "paid"


# ----------------- pass over the database -----------------

def test_exceeding_balance_is_repaired_with_one_audit_record(conn, insert_raw_invoice, reconcile):
    inv = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    summary = reconcile()

    assert _balance(conn, inv) == 500.0
    rows = _audit_rows(conn)
    assert len(rows) == 1
    assert (rows[0]["invoice_id"], rows[0]["old_balance"], rows[0]["new_balance"]) == (inv, 520.0, 500.0)
    assert (rows[0]["grand_total"], rows[0]["payment_amount"]) == (500.0, 0.0)
    assert rows[0]["issue_tag"] == "BALANCE_EXCEEDS_TOTAL"
    assert rows[0]["created_at"]
    assert (summary.scanned, summary.corrected, summary.audit_records, summary.failures) == (1, 1, 1, 0)


def test_second_run_changes_nothing(conn, insert_raw_invoice, service, make_invoice, reconcile):
    a = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    b = insert_raw_invoice(grand_total=1000.0, payment_amount=400.0, remaining_balance=100.0)
    c = insert_raw_invoice(grand_total=800.0, payment_amount=0.0, remaining_balance=-5.0)
    d = insert_raw_invoice(grand_total=300.0, payment_amount=0.0, remaining_balance=300.4)
    inv, (rod,) = make_invoice([{"product_name": "Rod", "quantity": 10, "unit_price": 100}])
    service.create_return(inv, [{"item_id": rod, "quantity": 3}], reason="Damaged")
    with conn:
        conn.execute("UPDATE invoices SET remaining_balance = 1000.5 WHERE id = ?", (inv,))

    first = reconcile()
    assert first.corrected == 5
    after_first = {i: _balance(conn, i) for i in (a, b, c, d, inv)}
    assert after_first == {a: 500.0, b: 600.0, c: 800.0, d: 300.0, inv: 700.0}
    audit_count = len(_audit_rows(conn))

    second = reconcile()
    assert second.corrected == 0
    assert second.audit_records == 0
    assert {i: _balance(conn, i) for i in after_first} == after_first
    assert len(_audit_rows(conn)) == audit_count


def test_consistent_invoices_are_not_touched(conn, make_invoice, reconcile):
    make_invoice([{"product_name": "Rod", "quantity": 10, "unit_price": 100}], paid=400)
    summary = reconcile()
    assert (summary.scanned, summary.corrected) == (1, 0)
    assert _audit_rows(conn) == []


def test_payment_status_is_refreshed(conn, insert_raw_invoice, reconcile):
    inv = insert_raw_invoice(grand_total=1000.0, payment_amount=1000.0, remaining_balance=250.0,
                             payment_status="partial")
    reconcile()
    row = conn.execute("SELECT remaining_balance, payment_status FROM invoices WHERE id=?", (inv,)).fetchone()
    assert (row[0], row[1]) == (0.0, "paid")


def test_dry_run_writes_nothing(conn, insert_raw_invoice, reconcile):
    inv = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    summary = reconcile(dry_run=True)
    assert summary.dry_run
    assert summary.corrected == 1
    assert summary.audit_records == 0
    assert summary.corrections[0].new_balance == 500.0
    assert _balance(conn, inv) == 520.0
    assert _audit_rows(conn) == []


def test_date_range_filter(conn, insert_raw_invoice, reconcile):
    early = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0, date="2025-01-10")
    late = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0, date="2025-03-10")
    summary = reconcile("2025-02-01", "2025-12-31")
    assert summary.scanned == 1
    assert _balance(conn, early) == 520.0
    assert _balance(conn, late) == 500.0


def test_row_failure_is_counted_and_skipped(conn, insert_raw_invoice, log_file):
    bad = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    good = insert_raw_invoice(grand_total=900.0, payment_amount=0.0, remaining_balance=10.0)

    class FlakyAudit(BalanceAuditRepo):
        def append(self, *, invoice_id, **kw):
            if invoice_id == bad:
                raise sqlite3.OperationalError("disk I/O error")
            return super().append(invoice_id=invoice_id, **kw)

    summary = ReconciliationPass(conn, audit=FlakyAudit(conn), logger=get_logger(str(log_file))).run()
    assert summary.failures == 1
    assert summary.failed_invoice_ids == [bad]
    assert not summary.ok
    # the failed row's balance update rolled back with its audit insert
    assert _balance(conn, bad) == 520.0
    assert _balance(conn, good) == 900.0
    assert summary.corrected == 1


def test_customer_rollup(conn, customer_id, make_invoice, reconcile):
    make_invoice([{"product_name": "Rod", "quantity": 10, "unit_price": 100}], paid=400)
    make_invoice([{"product_name": "Wire", "quantity": 5, "unit_price": 20}])
    first = reconcile()
    assert first.customers_updated == 1
    c = CustomersRepo(conn).get(customer_id)
    assert (c.balance, c.status) == (700.0, "Outstanding")

    assert reconcile().customers_updated == 0


def test_paid_up_customer_is_clear(conn, customer_id, make_invoice, reconcile):
    make_invoice([{"product_name": "Rod", "quantity": 1, "unit_price": 100}], paid=100)
    reconcile()
    c = CustomersRepo(conn).get(customer_id)
    assert (c.balance, c.status) == (0.0, "Clear")


# ----------------- maintenance flag -----------------

def test_pass_holds_and_releases_the_flag(conn, insert_raw_invoice, reconcile):
    insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    reconcile()
    assert not MaintenanceRepo(conn).is_active()


def test_pass_refuses_when_flag_is_held(conn, insert_raw_invoice, reconcile):
    inv = insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    maint = MaintenanceRepo(conn)
    assert maint.acquire("another-run")
    assert not maint.acquire("second")

    with pytest.raises(MaintenanceModeActive):
        reconcile()
    assert _balance(conn, inv) == 520.0
    assert maint.holder() == "another-run"


# ----------------- structured log -----------------

def test_events_are_json_lines(conn, insert_raw_invoice, reconcile, log_file):
    insert_raw_invoice(grand_total=500.0, payment_amount=0.0, remaining_balance=520.0)
    reconcile()
    for h in get_logger(str(log_file)).handlers:
        h.flush()

    events = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    phases = [e["extra"]["phase"] for e in events]
    assert phases[0] == "start" and phases[-1] == "finish"
    assert all(e["extra"]["op"] == "reconcile" for e in events)
    fixed = [e for e in events if e["extra"]["phase"] == "invoice"]
    assert fixed[0]["extra"]["new_balance"] == 500.0
