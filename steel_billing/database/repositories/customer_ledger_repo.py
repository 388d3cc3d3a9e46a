# database/repositories/customer_ledger_repo.py
from __future__ import annotations

import sqlite3
from typing import Optional


class CustomerLedgerRepo:
    """
    Default settlement collaborator for returns.

    Conventions:
      • Return credits ADD credit (entry_type='credit', positive amount).
      • Credit spent on an invoice is a 'debit' entry (positive amount).
      • Cash refunds are recorded in cash_refunds; they do not touch the ledger.
      • Both tables are append-only; corrections are new rows.

    reference_type values:
      - 'return'
      - 'manual'
      - 'invoice'  (debits: credit applied to that invoice)
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def apply_credit(
        self,
        customer_id: int,
        amount: float,
        *,
        reference_type: str = "return",
        reference_id: Optional[int] = None,
        date: Optional[str] = None,          # 'YYYY-MM-DD' (defaults to CURRENT_DATE)
        notes: Optional[str] = None,
    ) -> int:
        """Credit the customer's ledger (positive amount). Returns the entry id."""
        if amount is None or float(amount) <= 0:
            raise ValueError("Credit amount must be a positive number.")
        cur = self.conn.execute(
            """
            INSERT INTO customer_ledger_entries
                (customer_id, entry_type, amount, reference_type, reference_id, date, notes)
            VALUES
                (:customer_id, 'credit', :amount, :reference_type, :reference_id,
                 COALESCE(:date, CURRENT_DATE), :notes)
            """,
            {
                "customer_id": customer_id,
                "amount": float(amount),
                "reference_type": reference_type,
                "reference_id": reference_id,
                "date": date,
                "notes": notes,
            },
        )
        return int(cur.lastrowid)

    def apply_credit_to_invoice(
        self,
        customer_id: int,
        invoice_id: int,
        amount: float,                        # positive; written as a 'debit' entry
        *,
        date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """
        Consume existing credit against an invoice. Returns the entry id.

        Only the ledger side: the matching invoice payment is written by the
        billing service in the same transaction, capped at what the invoice owes.
        """
        if amount is None or float(amount) <= 0:
            raise ValueError("Apply amount must be a positive number.")
        available = self.get_credit_balance(customer_id)
        if float(amount) > available + 1e-9:
            raise ValueError(
                f"Cannot apply {float(amount):.2f}; available credit is {available:.2f}."
            )
        cur = self.conn.execute(
            """
            INSERT INTO customer_ledger_entries
                (customer_id, entry_type, amount, reference_type, reference_id, date, notes)
            VALUES
                (?, 'debit', ?, 'invoice', ?, COALESCE(?, CURRENT_DATE), ?)
            """,
            (customer_id, float(amount), invoice_id, date, notes),
        )
        return int(cur.lastrowid)

    def record_cash_refund(
        self,
        customer_id: int,
        amount: float,
        *,
        return_id: Optional[int] = None,
        date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Record cash handed back to the customer. Returns the refund id."""
        if amount is None or float(amount) <= 0:
            raise ValueError("Refund amount must be a positive number.")
        cur = self.conn.execute(
            """
            INSERT INTO cash_refunds(customer_id, return_id, amount, date, notes)
            VALUES (?, ?, ?, COALESCE(?, CURRENT_DATE), ?)
            """,
            (customer_id, return_id, float(amount), date, notes),
        )
        return int(cur.lastrowid)

    def get_credit_balance(self, customer_id: int) -> float:
        """Credits minus debits; 0.0 when the customer has no entries."""
        row = self.conn.execute(
            """
            SELECT COALESCE(SUM(CASE WHEN entry_type = 'credit' THEN amount ELSE -amount END), 0.0)
                   AS balance
            FROM customer_ledger_entries
            WHERE customer_id = ?
            """,
            (customer_id,),
        ).fetchone()
        return float(row["balance"] or 0.0)

    def list_refunds(self, customer_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM cash_refunds WHERE customer_id = ? ORDER BY id",
            (customer_id,),
        ).fetchall()
