from __future__ import annotations

import sqlite3
from typing import Optional


class BalanceAuditRepo:
    """Append-only trail of remaining_balance corrections (invoice_balance_audit)."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def append(
        self,
        *,
        invoice_id: int,
        old_balance: float,
        new_balance: float,
        grand_total: float,
        payment_amount: float,
        issue_tag: Optional[str] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO invoice_balance_audit
                (invoice_id, old_balance, new_balance, grand_total, payment_amount, issue_tag)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (invoice_id, old_balance, new_balance, grand_total, payment_amount, issue_tag),
        )
        return int(cur.lastrowid)

    def list_for_invoice(self, invoice_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM invoice_balance_audit WHERE invoice_id = ? ORDER BY id",
            (invoice_id,),
        ).fetchall()

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS n FROM invoice_balance_audit").fetchone()
        return int(row["n"])
