# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from . import schema as schema_module
from .versioning import ensure_version

MEMORY_DB = ":memory:"


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode (file databases only)
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures the schema and the schema-version row are applied idempotently.

    db_path defaults to config.DB_PATH; pass ":memory:" for a throwaway DB.
    """
    target = DB_PATH if db_path is None else db_path
    in_memory = str(target) == MEMORY_DB

    if not in_memory:
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(target))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL;")

    # Always apply the schema (idempotent: CREATE ... IF NOT EXISTS)
    schema_module.apply_schema(conn)
    ensure_version(conn)

    conn.commit()
    return conn


__all__ = [
    "MEMORY_DB",
    "get_connection",
]
