from __future__ import annotations
from dataclasses import dataclass
import sqlite3
from typing import Optional

from ...utils.helpers import safe_number


@dataclass
class InvoiceHeader:
    invoice_id: int | None
    bill_number: str
    customer_id: int
    date: str
    subtotal: float
    discount_percent: float
    discount_amount: float
    grand_total: float
    payment_amount: float
    remaining_balance: float
    payment_status: str
    notes: str | None = None

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "InvoiceHeader":
        return cls(
            invoice_id=int(r["id"]),
            bill_number=r["bill_number"],
            customer_id=int(r["customer_id"]),
            date=r["date"],
            subtotal=safe_number(r["subtotal"]),
            discount_percent=safe_number(r["discount_percent"]),
            discount_amount=safe_number(r["discount_amount"]),
            grand_total=safe_number(r["grand_total"]),
            payment_amount=safe_number(r["payment_amount"]),
            remaining_balance=safe_number(r["remaining_balance"]),
            payment_status=r["payment_status"],
            notes=r["notes"],
        )


class InvoicesRepo:
    """
    Invoice headers and line items.

    Header fields subtotal/discount_amount/grand_total/remaining_balance/
    payment_status are derived values; they are computed by the billing
    engine and written here verbatim. Nothing in this class commits: the
    service (or the reconciliation pass) owns the transaction.
    """

    _ITEM_COLS = (
        "product_id", "product_name", "quantity", "unit", "unit_type",
        "unit_price", "total_price", "is_misc_item",
        "t_iron_pieces", "t_iron_length_per_piece", "t_iron_total_feet", "t_iron_unit",
    )

    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_invoice(self, invoice_id: int) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM invoices WHERE id = ?", (invoice_id,)
        ).fetchone()

    def get_header(self, invoice_id: int) -> Optional[InvoiceHeader]:
        r = self.get_invoice(invoice_id)
        return InvoiceHeader.from_row(r) if r else None

    def list_items(self, invoice_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = ? ORDER BY id",
            (invoice_id,),
        ).fetchall()

    def get_item(self, item_id: int) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM invoice_items WHERE id = ?", (item_id,)
        ).fetchone()

    def next_bill_number(self, prefix: str = "INV") -> str:
        """Next sequential bill number, e.g. INV-000042."""
        row = self.conn.execute(
            "SELECT COALESCE(MAX(id), 0) + 1 AS n FROM invoices"
        ).fetchone()
        return f"{prefix}-{int(row['n']):06d}"

    def list_open_for_customer(self, customer_id: int) -> list[sqlite3.Row]:
        """Invoices of one customer with something still owing, oldest first."""
        return self.conn.execute(
            """
            SELECT * FROM invoices
             WHERE customer_id = ? AND CAST(remaining_balance AS REAL) > 0.01
             ORDER BY DATE(date), id
            """,
            (customer_id,),
        ).fetchall()

    def list_for_reconciliation(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> list[sqlite3.Row]:
        """
        Invoices with the inputs the balance repair needs: stored header
        numbers plus the sum of their return line totals.
        """
        sql = """
        SELECT i.id, i.bill_number, i.customer_id, i.date,
               CAST(i.grand_total AS REAL)        AS grand_total,
               CAST(i.payment_amount AS REAL)     AS payment_amount,
               CAST(i.remaining_balance AS REAL)  AS remaining_balance,
               i.payment_status,
               COALESCE((
                 SELECT SUM(CAST(ri.total_price AS REAL))
                 FROM return_items ri
                 JOIN returns r ON r.id = ri.return_id
                 WHERE r.original_invoice_id = i.id
               ), 0.0) AS returns_total
        FROM invoices i
        WHERE (:date_from IS NULL OR DATE(i.date) >= DATE(:date_from))
          AND (:date_to   IS NULL OR DATE(i.date) <= DATE(:date_to))
        ORDER BY i.id
        """
        return self.conn.execute(sql, {"date_from": date_from, "date_to": date_to}).fetchall()

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def insert_invoice(
        self,
        *,
        bill_number: str,
        customer_id: int,
        date: str,
        discount_percent: float = 0.0,
        notes: str | None = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO invoices(bill_number, customer_id, date, discount_percent, notes)
            VALUES (?, ?, ?, ?, ?)
            """,
            (bill_number, customer_id, date, discount_percent, notes),
        )
        return int(cur.lastrowid)

    def insert_item(self, invoice_id: int, fields: dict) -> int:
        cols = [c for c in self._ITEM_COLS if c in fields]
        placeholders = ", ".join("?" for _ in cols)
        cur = self.conn.execute(
            f"INSERT INTO invoice_items(invoice_id, {', '.join(cols)}) VALUES (?, {placeholders})",
            (invoice_id, *[fields[c] for c in cols]),
        )
        return int(cur.lastrowid)

    def update_item(self, item_id: int, fields: dict) -> None:
        cols = [c for c in self._ITEM_COLS if c in fields]
        if not cols:
            return
        assignments = ", ".join(f"{c} = ?" for c in cols)
        self.conn.execute(
            f"UPDATE invoice_items SET {assignments} WHERE id = ?",
            (*[fields[c] for c in cols], item_id),
        )

    def delete_item(self, item_id: int) -> None:
        self.conn.execute("DELETE FROM invoice_items WHERE id = ?", (item_id,))

    def save_totals(
        self,
        invoice_id: int,
        *,
        subtotal: float,
        discount_percent: float,
        discount_amount: float,
        grand_total: float,
        remaining_balance: float,
        payment_status: str,
    ) -> None:
        """Persist totals and both derived balance fields together."""
        self.conn.execute(
            """
            UPDATE invoices
               SET subtotal = ?, discount_percent = ?, discount_amount = ?, grand_total = ?,
                   remaining_balance = ?, payment_status = ?, updated_at = CURRENT_TIMESTAMP
             WHERE id = ?
            """,
            (subtotal, discount_percent, discount_amount, grand_total,
             remaining_balance, payment_status, invoice_id),
        )

    def update_balance(
        self,
        invoice_id: int,
        *,
        remaining_balance: float,
        payment_status: str,
        payment_amount: float | None = None,
    ) -> None:
        """
        Write remaining_balance + payment_status (and payment_amount when a
        payment was just appended). Never called with only one of the pair.
        """
        if payment_amount is None:
            self.conn.execute(
                """
                UPDATE invoices
                   SET remaining_balance = ?, payment_status = ?, updated_at = CURRENT_TIMESTAMP
                 WHERE id = ?
                """,
                (remaining_balance, payment_status, invoice_id),
            )
        else:
            self.conn.execute(
                """
                UPDATE invoices
                   SET payment_amount = ?, remaining_balance = ?, payment_status = ?,
                       updated_at = CURRENT_TIMESTAMP
                 WHERE id = ?
                """,
                (payment_amount, remaining_balance, payment_status, invoice_id),
            )
