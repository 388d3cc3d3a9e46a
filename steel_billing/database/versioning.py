import sqlite3

from ..constants import SCHEMA_VERSION, TABLE_SCHEMA_VERSION


def _ensure_table(conn: sqlite3.Connection):
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}(
            id INTEGER PRIMARY KEY CHECK (id=1),
            version TEXT NOT NULL
        );
    """)


def get_current_version(conn: sqlite3.Connection) -> str | None:
    _ensure_table(conn)
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1;").fetchone()
    return row["version"] if row else None


def ensure_version(conn: sqlite3.Connection, version: str = SCHEMA_VERSION) -> str:
    """
    Stamp a fresh database with `version`; an existing stamp is left alone.
    Returns the version now recorded.
    """
    current = get_current_version(conn)
    if current is None:
        conn.execute(
            f"INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?);", (version,)
        )
        return version
    return current
