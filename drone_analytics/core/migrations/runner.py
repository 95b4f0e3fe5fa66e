"""Forward-only SQLite migrations for the credential store."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from pathlib import Path

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

_BOOKKEEPING_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  migration_id TEXT PRIMARY KEY,
  applied_at INTEGER NOT NULL
)
"""


def migration_files(directory: Path = MIGRATIONS_DIR) -> list[Path]:
    """Return migration scripts ordered by their numeric file name prefix."""
    return sorted(directory.glob("*.sql"))


def _applied_ids(connection: sqlite3.Connection) -> set[str]:
    rows = connection.execute("SELECT migration_id FROM schema_migrations").fetchall()
    return {row[0] for row in rows}


def apply_migrations(database_path: Path, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending migrations to ``database_path``; return the ids applied now.

    Each script is recorded in ``schema_migrations`` in the same commit as its
    DDL, so a rerun picks up where a failed run stopped.
    """
    database_path.parent.mkdir(parents=True, exist_ok=True)
    applied: list[str] = []
    with closing(sqlite3.connect(str(database_path))) as connection:
        connection.execute(_BOOKKEEPING_DDL)
        connection.commit()
        done = _applied_ids(connection)
        for script in migration_files(directory):
            if script.name in done:
                continue
            connection.executescript("BEGIN;\n" + script.read_text(encoding="utf-8"))
            connection.execute(
                "INSERT INTO schema_migrations(migration_id, applied_at) "
                "VALUES (?, strftime('%s','now'))",
                (script.name,),
            )
            connection.commit()
            applied.append(script.name)

    if applied:
        LOGGER.info("sqlite_migrations_applied: %s", ", ".join(applied))
    return applied
