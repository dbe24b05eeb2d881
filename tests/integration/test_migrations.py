"""Alembic migrations for the storage tables.

On SQLite the full *upgrade → downgrade → upgrade* path runs against a
temporary database file. On PostgreSQL the session container is checked to
be at head with both tables in place.
"""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import URL

from certstore import config

TABLES = {"storage_entries", "storage_locks"}


def _tables(url: str) -> set[str]:
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def _head() -> str | None:
    return ScriptDirectory.from_config(config.build_alembic_config()).get_current_head()


def test_sqlite_upgrade_downgrade_roundtrip(tmp_path: Path):
    """Upgrade creates both tables, downgrade drops them, upgrade restores."""
    url = str(URL.create("sqlite+pysqlite", database=str(tmp_path / "certs.db")))
    cfg = config.build_alembic_config(url)

    command.upgrade(cfg, "head")
    assert TABLES <= _tables(url)

    command.downgrade(cfg, "base")
    assert not TABLES & _tables(url)

    command.upgrade(cfg, "head")
    assert TABLES <= _tables(url)


def test_sqlite_primary_keys(sqlite_url: str):
    """Both tables are keyed by ``key``."""
    engine = create_engine(sqlite_url)
    try:
        insp = inspect(engine)
        for table in TABLES:
            pk = insp.get_pk_constraint(table)
            assert pk["constrained_columns"] == ["key"]
            assert pk["name"] == f"pk_{table}"
    finally:
        engine.dispose()


def test_postgres_is_at_head(pg_url: str):
    """The session database is migrated to the single head revision."""
    assert TABLES <= _tables(pg_url)
    engine = create_engine(pg_url)
    try:
        with engine.connect() as conn:
            current = MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()
    assert current == _head()
