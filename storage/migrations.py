"""Ad-hoc database migrations for the offline queue."""

from __future__ import annotations

from sqlalchemy import text

from core.settings import OFFLINE
from models.drain_lease import DRAIN_LEASE_NAME


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def _table_exists(conn, table: str) -> bool:
    result = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    )
    return result.first() is not None


def ensure_mutation_queue_columns(conn) -> None:
    table = OFFLINE.storage_key
    if not _table_exists(conn, table):
        return
    columns = {
        "signature": "TEXT NOT NULL DEFAULT ''",
        "max_attempts": f"INTEGER NOT NULL DEFAULT {int(OFFLINE.max_attempts)}",
        "last_error": "TEXT",
        "dead_lettered_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, table, name):
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))

    conn.execute(
        text(
            f"""
            CREATE INDEX IF NOT EXISTS ix_{table}_user_created
            ON {table} (user_id, created_at, seq)
            """
        )
    )


def ensure_drain_lease_row(conn) -> None:
    if not _table_exists(conn, "drain_lease"):
        return
    conn.execute(
        text("INSERT OR IGNORE INTO drain_lease (name) VALUES (:name)"),
        {"name": DRAIN_LEASE_NAME},
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_mutation_queue_columns(conn)
        ensure_drain_lease_row(conn)


__all__ = ["run_all"]
