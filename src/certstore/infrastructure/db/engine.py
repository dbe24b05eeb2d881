"""Database engine factory.

Centralizes creation of SQLAlchemy Engines so every connection the SQL
storage backend uses is configured the same way.

- **SQLite**: connection PRAGMAs enable WAL, set a busy timeout so concurrent
  writers wait instead of failing, and make ``LIKE`` case sensitive so key
  prefix queries match keys exactly.
- **Other backends**: no tuning applied here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, make_url

if TYPE_CHECKING:
    from sqlite3 import Connection as SQLiteConnection

    from sqlalchemy.engine import Engine

SQLITE_NAMES = {"sqlite", "sqlite+pysqlite"}

#: Milliseconds a SQLite connection waits on a locked database.
SQLITE_BUSY_TIMEOUT_MS = 30_000


def is_sqlite(url: str | URL) -> bool:
    """Return True if the given SQLAlchemy URL or string corresponds to SQLite."""
    u = make_url(str(url))
    return u.get_backend_name() in SQLITE_NAMES


def make_engine(url: str | URL, *, echo: bool = False) -> Engine:
    """Create a SQLAlchemy Engine for the given URL.

    For SQLite the following PRAGMAs are applied on every new connection:
        - ``journal_mode=WAL`` (readers do not block the writer)
        - ``synchronous=NORMAL`` (balanced durability)
        - ``busy_timeout`` (wait for the write lock instead of erroring)
        - ``case_sensitive_like=ON`` (exact prefix matching on keys)

    Args:
        url: Database connection URL (str or :class:`URL`).
        echo: If True, log SQL statements.

    Returns:
        Engine: Configured SQLAlchemy Engine.
    """

    if not is_sqlite(url):
        return create_engine(url, echo=echo)

    # pooled connections move between threads
    engine = create_engine(
        url, echo=echo, connect_args={"check_same_thread": False}
    )

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn: SQLiteConnection, conn_record):  # type: ignore #pylint: disable=W0613
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA synchronous=NORMAL;")
        cur.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
        cur.execute("PRAGMA case_sensitive_like=ON;")
        cur.close()

    return engine
