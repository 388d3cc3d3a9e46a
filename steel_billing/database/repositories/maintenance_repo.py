from __future__ import annotations

import sqlite3
from typing import Optional


class MaintenanceRepo:
    """
    The single-row maintenance flag (maintenance_state, id=1).

    acquire/release commit immediately: the flag must be visible to other
    connections while the long-running pass holds it.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _ensure_row(self) -> None:
        self.conn.execute("INSERT OR IGNORE INTO maintenance_state(id, active) VALUES (1, 0)")

    def acquire(self, holder: str) -> bool:
        """Set the flag if it is clear. Returns False when someone else holds it."""
        with self.conn:
            self._ensure_row()
            cur = self.conn.execute(
                """
                UPDATE maintenance_state
                   SET active = 1, holder = ?, started_at = CURRENT_TIMESTAMP
                 WHERE id = 1 AND active = 0
                """,
                (holder,),
            )
        return cur.rowcount == 1

    def release(self) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE maintenance_state SET active = 0, holder = NULL, started_at = NULL WHERE id = 1"
            )

    def is_active(self) -> bool:
        return self.holder() is not None

    def holder(self) -> Optional[str]:
        """Name of the current holder, or None when the flag is clear."""
        row = self.conn.execute(
            "SELECT active, holder FROM maintenance_state WHERE id = 1"
        ).fetchone()
        if row is None or not row["active"]:
            return None
        return row["holder"] or "maintenance"
