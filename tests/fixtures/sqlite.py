"""SQLite fixtures: per-test database files migrated with Alembic."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from alembic import command
from sqlalchemy.engine import URL

from certstore import config
from certstore.infrastructure.db.engine import make_engine

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of a per-test SQLite file migrated to Alembic head."""
    url = str(URL.create("sqlite+pysqlite", database=str(tmp_path / "certs.db")))
    command.upgrade(config.build_alembic_config(url), "head")
    return url


@pytest.fixture
def sqlite_engine_file(sqlite_url: str) -> Iterator[Engine]:
    """Engine for the migrated per-test SQLite file.

    A file (not ``:memory:``) so every pooled connection, and every thread in
    the concurrency tests, sees the same database.
    """
    test_engine = make_engine(sqlite_url)
    try:
        yield test_engine
    finally:
        test_engine.dispose()
