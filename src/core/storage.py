from __future__ import annotations

import sqlite3
from pathlib import Path

from .config import BASE_DIR
from .migrations import apply_migrations

DB_PATH = BASE_DIR / "data" / "app.db"


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Return a connection to the local SQLite database, applying migrations."""

    db_path = db_path or DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    apply_migrations(conn)
    return conn


def init_db(db_path: Path | None = None) -> None:
    """Ensure the database file exists and schema is up to date."""

    conn = get_connection(db_path)
    conn.close()
