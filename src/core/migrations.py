from __future__ import annotations

import sqlite3
from typing import Callable, List


def migration_1(conn: sqlite3.Connection) -> None:
    """Report definitions and audit trail."""

    cursor = conn.cursor()
    # Stored report queries
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS report_definitions (
            report_id INTEGER PRIMARY KEY AUTOINCREMENT,
            report_name TEXT NOT NULL,
            query_definition TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    # Audit log
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS audit (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            action TEXT NOT NULL,
            created_at TEXT NOT NULL,
            details TEXT
        )
        """
    )

    conn.commit()


MIGRATIONS: List[Callable[[sqlite3.Connection], None]] = [migration_1]


def apply_migrations(conn: sqlite3.Connection) -> None:
    """Apply any pending migrations to the connected database."""

    cursor = conn.cursor()
    cursor.execute("PRAGMA user_version")
    row = cursor.fetchone()
    current_version = int(row[0]) if row else 0

    for version, migration in enumerate(MIGRATIONS, start=1):
        if current_version < version:
            migration(conn)
            cursor.execute(f"PRAGMA user_version = {version}")
            conn.commit()
