"""
Database migrations for the local store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from init_db() after create_all() so both fresh
installs and databases created by earlier releases are handled.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times; checks column existence before altering.
    Supports SQLite only (uses PRAGMA table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        # tasks: free-text description added after the first release
        _add_column_if_missing(conn, "tasks", "description", "TEXT")

        # sync_metadata: durable link to the remote primary key
        _add_column_if_missing(conn, "sync_metadata", "remote_id", "INTEGER")

        # sync_log: failure detail and pass end time
        _add_column_if_missing(conn, "sync_log", "error_details", "TEXT")
        _add_column_if_missing(conn, "sync_log", "completed_at", "DATETIME")

        conn.commit()


def table_columns(conn, table: str) -> list:
    """Return the column names of a table, in schema order ([] if absent)."""
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    return [row[1] for row in result]


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name, as SQLite stores it.
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "TEXT", "DATETIME".
    """
    existing_columns = set(table_columns(conn, table))
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
