"""Unit tests for `certstore.adapters.db.sa_types.UTCDateTime`.

Lock expiry compares ``storage_locks.expires`` against "now", so the column
type must bind every datetime as the same UTC instant regardless of the
caller's timezone, and hand back aware UTC values.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import dialect as PostgresDialect
from sqlalchemy.dialects.sqlite import dialect as SQLiteDialect

from certstore.adapters.db.sa_types import UTCDateTime
from certstore.adapters.storage.schema import storage_locks

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

NOON_UTC = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
FIVE_AM_MST = datetime(2024, 1, 1, 5, 0, 0, tzinfo=timezone(timedelta(hours=-7)))

DIALECTS = pytest.mark.parametrize(
    "dialect", [SQLiteDialect(), PostgresDialect()], ids=["sqlite", "postgres"]
)


@DIALECTS
def test_bind_none_passes_through(dialect):
    """NULL stays NULL."""
    assert UTCDateTime().process_bind_param(None, dialect) is None


@DIALECTS
@pytest.mark.parametrize(
    "value",
    [NOON_UTC, FIVE_AM_MST, datetime(2024, 1, 1, 12, 0, 0)],
    ids=["utc", "offset", "naive"],
)
def test_bind_normalizes_to_the_same_instant(dialect, value: datetime):
    """Aware values convert to UTC; naive values are taken as UTC.

    SQLite binds naive UTC wall time; PostgreSQL binds aware UTC.
    """
    out = UTCDateTime().process_bind_param(value, dialect)
    if dialect.name == "sqlite":
        assert out.tzinfo is None
        assert out == NOON_UTC.replace(tzinfo=None)
    else:
        assert out == NOON_UTC
        assert out.utcoffset() == timedelta(0)


def test_result_is_aware_utc():
    """Naive results are tagged UTC; aware ones are converted."""
    custom = UTCDateTime()
    naive = custom.process_result_value(datetime(2024, 1, 1, 12), SQLiteDialect())
    assert naive == NOON_UTC and naive.tzinfo is timezone.utc
    aware = custom.process_result_value(FIVE_AM_MST, PostgresDialect())
    assert aware == NOON_UTC and aware.tzinfo is timezone.utc
    assert custom.process_result_value(None, SQLiteDialect()) is None


def test_literal_compile_uses_utc_wall_time():
    """Inlined literals render the normalized UTC time."""
    stmt = sa.select(sa.literal(FIVE_AM_MST, type_=UTCDateTime()).label("dt"))
    sql = str(
        stmt.compile(dialect=SQLiteDialect(), compile_kwargs={"literal_binds": True})
    )
    assert re.search(r"2024-01-01 12:00:00(\.\d+)?", sql)


def test_python_type():
    """python_type reports datetime."""
    assert UTCDateTime().python_type is datetime


def test_expiry_round_trip_and_compare(sqlite_engine_file: Engine):
    """An offset expiry stored in SQLite compares correctly against UTC now."""
    with sqlite_engine_file.begin() as conn:
        conn.execute(
            sa.insert(storage_locks).values(
                key="k", owner="0" * 26, expires=FIVE_AM_MST
            )
        )
        expires = conn.execute(sa.select(storage_locks.c.expires)).scalar_one()
        expired = conn.execute(
            sa.select(sa.func.count()).where(
                storage_locks.c.expires <= NOON_UTC + timedelta(seconds=1)
            )
        ).scalar_one()
    assert expires == NOON_UTC
    assert expires.tzinfo is timezone.utc
    assert expired == 1
