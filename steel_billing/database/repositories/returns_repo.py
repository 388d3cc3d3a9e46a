from __future__ import annotations

from typing import Dict, Iterable, Optional
import sqlite3


class ReturnsRepo:
    """
    Immutable item returns against an original invoice.

    A return header and all of its items are inserted together by
    append_return(); the caller's transaction makes that atomic. DB triggers
    block UPDATE on both tables.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def append_return(
        self,
        *,
        invoice_id: int,
        customer_id: int,
        reason: str,
        settlement_type: str,
        items: Iterable[dict],
        date: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
        settlement_amount: Optional[float] = None,
    ) -> int:
        """
        items: dicts with original_invoice_item_id, product_id, product_name,
        return_quantity, unit_price, total_price, unit (optional), reason (optional).
        settlement_amount is what was paid out to the customer; it defaults
        to the items' total.
        Returns the new return id.
        """
        items = list(items)
        if not items:
            raise ValueError("A return needs at least one item.")
        if settlement_amount is None:
            settlement_amount = sum(float(it["total_price"]) for it in items)

        cur = self.conn.execute(
            """
            INSERT INTO returns
                (original_invoice_id, customer_id, reason, settlement_type, settlement_amount,
                 date, notes, created_by)
            VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_DATE), ?, ?)
            """,
            (invoice_id, customer_id, reason, settlement_type, round(settlement_amount, 2),
             date, notes, created_by),
        )
        return_id = int(cur.lastrowid)

        self.conn.executemany(
            """
            INSERT INTO return_items
                (return_id, original_invoice_item_id, product_id, product_name,
                 return_quantity, unit_price, total_price, unit, reason)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    return_id,
                    int(it["original_invoice_item_id"]),
                    it.get("product_id"),
                    it["product_name"],
                    float(it["return_quantity"]),
                    float(it["unit_price"]),
                    float(it["total_price"]),
                    it.get("unit"),
                    it.get("reason"),
                )
                for it in items
            ],
        )
        return return_id

    def list_returns_for_invoice(self, invoice_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM returns WHERE original_invoice_id = ? ORDER BY id",
            (invoice_id,),
        ).fetchall()

    def list_items(self, return_id: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM return_items WHERE return_id = ? ORDER BY id",
            (return_id,),
        ).fetchall()

    def returned_quantities(self, invoice_id: int) -> Dict[int, float]:
        """
        Quantity already returned per invoice item for the given invoice.

        Returns a dict mapping invoice item id -> returned_so_far; items
        with no returns are present with 0.0.
        """
        sql = """
        SELECT
          ii.id AS item_id,
          COALESCE((
            SELECT SUM(CAST(ri.return_quantity AS REAL))
            FROM return_items ri
            WHERE ri.original_invoice_item_id = ii.id
          ), 0.0) AS returned_so_far
        FROM invoice_items ii
        WHERE ii.invoice_id = ?
        """
        rows = self.conn.execute(sql, (invoice_id,)).fetchall()
        return {int(r["item_id"]): float(r["returned_so_far"]) for r in rows}

    def returns_total(self, invoice_id: int) -> float:
        row = self.conn.execute(
            """
            SELECT COALESCE(SUM(CAST(ri.total_price AS REAL)), 0.0) AS total
            FROM return_items ri
            JOIN returns r ON r.id = ri.return_id
            WHERE r.original_invoice_id = ?
            """,
            (invoice_id,),
        ).fetchone()
        return float(row["total"] or 0.0)
