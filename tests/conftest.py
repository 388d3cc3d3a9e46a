# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures)
# - Every test gets a fresh in-memory DB built from the real schema
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Provide small factories for customers / invoices / stored rows
# - Silence benign Qt signal warnings
# ---------------------------------------------------------------------

from __future__ import annotations

import os
import re
import sqlite3

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6 import QtCore  # noqa: E402

from steel_billing.database import get_connection  # noqa: E402
from steel_billing.database.repositories import CustomersRepo  # noqa: E402
from steel_billing.modules.billing import InvoiceBillingService  # noqa: E402


# ---------- Qt: let pytest-qt own the app ----------
@pytest.fixture(scope="session")
def app(qapp):  # alias to match code that expects an `app` fixture
    return qapp


# ---------- Silence benign Qt warnings ----------
_BENIGN_QT_PATTERNS = [
    r"^QObject::connect: .* already connected",
    r"^QObject::disconnect: Unexpected null parameter",
    r"^QBasicTimer::stop: Failed\. Platform timer not running\.",
]

@pytest.fixture(autouse=True, scope="session")
def _silence_benign_qt():
    """Filter common harmless Qt messages during tests."""
    original = QtCore.qInstallMessageHandler(None)
    rx = [re.compile(p) for p in _BENIGN_QT_PATTERNS]

    def handler(msg_type, context, message):
        text = str(message)
        for r in rx:
            if r.search(text):
                return  # swallow benign messages
        QtCore.qInstallMessageHandler(None)
        try:
            QtCore.qDebug(message)
        finally:
            QtCore.qInstallMessageHandler(handler)

    QtCore.qInstallMessageHandler(handler)
    try:
        yield
    finally:
        QtCore.qInstallMessageHandler(original)


# ---------- Per-test database ----------
@pytest.fixture()
def conn():
    """Fresh in-memory DB with the full schema applied."""
    con = get_connection(":memory:")
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def customer_id(conn: sqlite3.Connection) -> int:
    with conn:
        return CustomersRepo(conn).create("Walk-in Customer", "0300-0000000", "Main Bazar")


@pytest.fixture()
def service(conn: sqlite3.Connection) -> InvoiceBillingService:
    return InvoiceBillingService(conn)


@pytest.fixture()
def make_invoice(service: InvoiceBillingService, customer_id: int):
    """
    Build an invoice through the service.

    lines: [{product_name, quantity, unit_price, unit_type?, is_misc_item?}]
    paid: optional payment recorded after the lines are added.
    """
    def _make(lines, *, discount_percent=0.0, paid=None, date="2025-01-15"):
        invoice_id = service.create_invoice(customer_id, date=date, discount_percent=discount_percent)
        item_ids = []
        for ln in lines:
            item_ids.append(
                service.add_line_item(
                    invoice_id,
                    product_name=ln["product_name"],
                    quantity=ln["quantity"],
                    unit_price=ln["unit_price"],
                    unit_type=ln.get("unit_type", "piece"),
                    is_misc_item=ln.get("is_misc_item", False),
                )
            )
        if paid:
            service.record_payment(invoice_id, paid)
        return invoice_id, item_ids

    return _make


@pytest.fixture()
def insert_raw_invoice(conn: sqlite3.Connection, customer_id: int):
    """
    Write an invoice header directly, bypassing the engine, to model rows
    left behind by older versions of the app.
    """
    counter = {"n": 0}

    def _insert(*, grand_total, payment_amount, remaining_balance, date="2025-01-15",
                payment_status="pending"):
        counter["n"] += 1
        with conn:
            cur = conn.execute(
                """
                INSERT INTO invoices(bill_number, customer_id, date, subtotal, grand_total,
                                     payment_amount, remaining_balance, payment_status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (f"LEGACY-{counter['n']:04d}", customer_id, date, grand_total, grand_total,
                 payment_amount, remaining_balance, payment_status),
            )
        return int(cur.lastrowid)

    return _insert
