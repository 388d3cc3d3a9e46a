from __future__ import annotations

import sqlite3
from typing import Optional


class InvoicePaymentsRepo:
    """
    Append-only customer receipts against an invoice (rows in invoice_payments).

    Amount validation against the invoice balance happens in the billing
    engine before anything reaches this class; the table CHECK only rejects
    non-positive amounts. A DB trigger blocks UPDATE.
    """

    METHODS: set[str] = {
        "Cash",
        "Bank Transfer",
        "Card",
        "Cheque",
        "Other",
        "Customer Credit",
    }

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def append_payment(
        self,
        *,
        invoice_id: int,
        amount: float,
        method: str = "Cash",
        channel: Optional[str] = None,
        date: Optional[str] = None,         # 'YYYY-MM-DD' (defaults to CURRENT_DATE)
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        if method not in self.METHODS:
            raise ValueError(f"Unsupported payment method: {method}")
        cur = self.conn.execute(
            """
            INSERT INTO invoice_payments
                (invoice_id, amount, method, channel, date, reference, notes)
            VALUES
                (:invoice_id, :amount, :method, :channel, COALESCE(:date, CURRENT_DATE), :reference, :notes)
            """,
            {
                "invoice_id": invoice_id,
                "amount": float(amount),
                "method": method,
                "channel": channel,
                "date": date,
                "reference": reference,
                "notes": notes,
            },
        )
        return int(cur.lastrowid)

    def list_by_invoice(self, invoice_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM invoice_payments WHERE invoice_id = ? ORDER BY date, id",
            (invoice_id,),
        ).fetchall()

    def total_for_invoice(self, invoice_id: int) -> float:
        row = self.conn.execute(
            "SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0) AS total "
            "FROM invoice_payments WHERE invoice_id = ?",
            (invoice_id,),
        ).fetchone()
        return float(row["total"] or 0.0)
