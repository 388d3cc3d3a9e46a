from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...constants import MONEY_EPSILON
from ...utils.helpers import round2, safe_number

STATUS_CLEAR = "Clear"
STATUS_OUTSTANDING = "Outstanding"


@dataclass
class Customer:
    customer_id: int | None
    name: str
    contact_info: str | None
    address: str | None
    balance: float = 0.0
    status: str = STATUS_CLEAR


def customer_status(balance: float) -> str:
    return STATUS_CLEAR if safe_number(balance) <= MONEY_EPSILON else STATUS_OUTSTANDING


class CustomersRepo:
    """
    Customers plus the outstanding-balance roll-up shown in the customer list.

    Writes run on the caller's connection and are committed by the caller.
    """

    _SELECT = (
        "SELECT id AS customer_id, name, contact_info, address, "
        "CAST(balance AS REAL) AS balance, status FROM customers"
    )

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip()

    # ---- Queries ----------------------------------------------------------

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(f"{self._SELECT} WHERE id=?", (customer_id,)).fetchone()
        return Customer(**r) if r else None

    def list_customers(self, active_only: bool = True) -> list[Customer]:
        where = " WHERE is_active = 1" if active_only else ""
        rows = self.conn.execute(f"{self._SELECT}{where} ORDER BY id DESC").fetchall()
        return [Customer(**r) for r in rows]

    # ---- Mutations --------------------------------------------------------

    def create(self, name: str, contact_info: str | None = None, address: str | None = None) -> int:
        if name is None or name.strip() == "":
            raise ValueError("Name cannot be empty.")
        cur = self.conn.execute(
            "INSERT INTO customers(name, contact_info, address) VALUES (?,?,?)",
            (self._normalize_text(name), self._normalize_text(contact_info), self._normalize_text(address)),
        )
        return int(cur.lastrowid)

    def recompute_balances(self, *, dry_run: bool = False) -> list[dict]:
        """
        Refresh customers.balance / status from invoices.remaining_balance.

        Only rows whose stored values differ are written. Returns the list of
        changes as {customer_id, old_balance, new_balance, old_status, new_status}.
        """
        rows = self.conn.execute(
            """
            SELECT c.id AS customer_id,
                   CAST(c.balance AS REAL) AS old_balance,
                   c.status AS old_status,
                   COALESCE((
                     SELECT SUM(CAST(i.remaining_balance AS REAL))
                     FROM invoices i
                     WHERE i.customer_id = c.id
                   ), 0.0) AS outstanding
            FROM customers c
            ORDER BY c.id
            """
        ).fetchall()

        changes: list[dict] = []
        for r in rows:
            new_balance = round2(r["outstanding"])
            new_status = customer_status(new_balance)
            old_balance = round2(r["old_balance"])
            if old_balance == new_balance and r["old_status"] == new_status:
                continue
            changes.append(
                {
                    "customer_id": int(r["customer_id"]),
                    "old_balance": old_balance,
                    "new_balance": new_balance,
                    "old_status": r["old_status"],
                    "new_status": new_status,
                }
            )
            if not dry_run:
                self.conn.execute(
                    "UPDATE customers SET balance=?, status=? WHERE id=?",
                    (new_balance, new_status, int(r["customer_id"])),
                )
        return changes
