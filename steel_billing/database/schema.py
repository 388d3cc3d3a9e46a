from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== PARTIES ======================== */

CREATE TABLE IF NOT EXISTS customers (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    contact_info TEXT,
    address      TEXT,
    /* roll-up of invoices.remaining_balance, refreshed by reconciliation */
    balance      REAL NOT NULL DEFAULT 0,
    status       TEXT NOT NULL DEFAULT 'Clear' CHECK (status IN ('Clear','Outstanding')),
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

/* ======================== PRODUCTS ======================== */

CREATE TABLE IF NOT EXISTS products (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    unit_type       TEXT NOT NULL DEFAULT 'kg-grams'
                    CHECK (unit_type IN ('kg-grams','kg','piece','bag','foot','meter','ton')),
    rate_per_unit   REAL NOT NULL DEFAULT 0 CHECK (rate_per_unit >= 0),
    length_per_piece REAL,
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

/* ======================== INVOICES ======================== */

CREATE TABLE IF NOT EXISTS invoices (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_number       TEXT UNIQUE NOT NULL,
    customer_id       INTEGER NOT NULL,
    date              DATE NOT NULL DEFAULT CURRENT_DATE,
    subtotal          REAL NOT NULL DEFAULT 0,
    discount_percent  REAL NOT NULL DEFAULT 0 CHECK (discount_percent BETWEEN 0 AND 100),
    discount_amount   REAL NOT NULL DEFAULT 0,
    grand_total       REAL NOT NULL DEFAULT 0,
    payment_amount    REAL NOT NULL DEFAULT 0,
    remaining_balance REAL NOT NULL DEFAULT 0,
    payment_status    TEXT NOT NULL DEFAULT 'pending'
                      CHECK (payment_status IN ('pending','partial','paid')),
    notes             TEXT,
    created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(id)
);
CREATE INDEX IF NOT EXISTS idx_invoices_customer ON invoices(customer_id);
CREATE INDEX IF NOT EXISTS idx_invoices_date     ON invoices(date);

CREATE TABLE IF NOT EXISTS invoice_items (
    id                      INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id              INTEGER NOT NULL,
    product_id              INTEGER,
    product_name            TEXT NOT NULL,
    quantity                REAL NOT NULL CHECK (quantity >= 0),
    unit                    TEXT,
    unit_type               TEXT NOT NULL DEFAULT 'piece',
    unit_price              REAL NOT NULL DEFAULT 0,
    total_price             REAL NOT NULL DEFAULT 0,
    is_misc_item            INTEGER NOT NULL DEFAULT 0 CHECK (is_misc_item IN (0,1)),
    t_iron_pieces           REAL,
    t_iron_length_per_piece REAL,
    t_iron_total_feet       REAL,
    t_iron_unit             TEXT,
    created_at              TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(id)
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);

/* -------- payments (append-only) -------- */
CREATE TABLE IF NOT EXISTS invoice_payments (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id  INTEGER NOT NULL,
    amount      REAL NOT NULL CHECK (amount > 0),
    method      TEXT NOT NULL DEFAULT 'cash',
    channel     TEXT,
    date        DATE NOT NULL DEFAULT CURRENT_DATE,
    reference   TEXT,
    notes       TEXT,
    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE RESTRICT
);
CREATE INDEX IF NOT EXISTS idx_invoice_payments_invoice ON invoice_payments(invoice_id);

CREATE TRIGGER IF NOT EXISTS trg_invoice_payments_no_update
BEFORE UPDATE ON invoice_payments
BEGIN
  SELECT RAISE(ABORT, 'invoice payments are append-only');
END;

/* ======================== RETURNS (immutable) ======================== */

CREATE TABLE IF NOT EXISTS returns (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    original_invoice_id INTEGER NOT NULL,
    customer_id         INTEGER NOT NULL,
    reason              TEXT NOT NULL CHECK (length(trim(reason)) > 0),
    settlement_type     TEXT NOT NULL CHECK (settlement_type IN ('ledger','cash')),
    settlement_amount   REAL NOT NULL DEFAULT 0,
    date                DATE NOT NULL DEFAULT CURRENT_DATE,
    notes               TEXT,
    created_by          TEXT,
    created_at          TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (original_invoice_id) REFERENCES invoices(id) ON DELETE RESTRICT,
    FOREIGN KEY (customer_id) REFERENCES customers(id)
);
CREATE INDEX IF NOT EXISTS idx_returns_invoice ON returns(original_invoice_id);

CREATE TABLE IF NOT EXISTS return_items (
    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id                INTEGER NOT NULL,
    original_invoice_item_id INTEGER NOT NULL,
    product_id               INTEGER,
    product_name             TEXT NOT NULL,
    return_quantity          REAL NOT NULL CHECK (return_quantity > 0),
    unit_price               REAL NOT NULL,
    total_price              REAL NOT NULL,
    unit                     TEXT,
    reason                   TEXT,
    FOREIGN KEY (return_id) REFERENCES returns(id) ON DELETE CASCADE,
    FOREIGN KEY (original_invoice_item_id) REFERENCES invoice_items(id) ON DELETE RESTRICT
);
CREATE INDEX IF NOT EXISTS idx_return_items_item ON return_items(original_invoice_item_id);

CREATE TRIGGER IF NOT EXISTS trg_returns_no_update
BEFORE UPDATE ON returns
BEGIN
  SELECT RAISE(ABORT, 'returns are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_return_items_no_update
BEFORE UPDATE ON return_items
BEGIN
  SELECT RAISE(ABORT, 'return items are immutable');
END;

/* ======================== SETTLEMENTS ======================== */

CREATE TABLE IF NOT EXISTS customer_ledger_entries (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id    INTEGER NOT NULL,
    entry_type     TEXT NOT NULL CHECK (entry_type IN ('credit','debit')),
    amount         REAL NOT NULL CHECK (amount > 0),
    reference_type TEXT,
    reference_id   INTEGER,
    date           DATE NOT NULL DEFAULT CURRENT_DATE,
    notes          TEXT,
    created_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(id)
);
CREATE INDEX IF NOT EXISTS idx_ledger_customer ON customer_ledger_entries(customer_id);

CREATE TABLE IF NOT EXISTS cash_refunds (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL,
    return_id   INTEGER,
    amount      REAL NOT NULL CHECK (amount > 0),
    date        DATE NOT NULL DEFAULT CURRENT_DATE,
    notes       TEXT,
    created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(id),
    FOREIGN KEY (return_id) REFERENCES returns(id)
);

/* ======================== MAINTENANCE ======================== */

/* append-only trail of reconciliation corrections */
CREATE TABLE IF NOT EXISTS invoice_balance_audit (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id     INTEGER NOT NULL,
    old_balance    REAL,
    new_balance    REAL NOT NULL,
    grand_total    REAL,
    payment_amount REAL,
    issue_tag      TEXT CHECK (issue_tag IS NULL OR issue_tag IN ('BALANCE_EXCEEDS_TOTAL','NEGATIVE_BALANCE_UNPAID')),
    created_at     TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_balance_audit_invoice ON invoice_balance_audit(invoice_id);

CREATE TRIGGER IF NOT EXISTS trg_balance_audit_no_update
BEFORE UPDATE ON invoice_balance_audit
BEGIN
  SELECT RAISE(ABORT, 'balance audit is append-only');
END;

CREATE TRIGGER IF NOT EXISTS trg_balance_audit_no_delete
BEFORE DELETE ON invoice_balance_audit
BEGIN
  SELECT RAISE(ABORT, 'balance audit is append-only');
END;

/* single-row exclusive flag held while the reconciliation pass runs */
CREATE TABLE IF NOT EXISTS maintenance_state (
    id         INTEGER PRIMARY KEY CHECK (id = 1),
    active     INTEGER NOT NULL DEFAULT 0 CHECK (active IN (0,1)),
    holder     TEXT,
    started_at TIMESTAMP
);
INSERT OR IGNORE INTO maintenance_state(id, active) VALUES (1, 0);
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the idempotent schema on an open connection (used for :memory: DBs too)."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "steel_store.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
        conn.commit()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "steel_store.db"
    init_schema(target)
    print(f"✓ DB applied to {target}")
