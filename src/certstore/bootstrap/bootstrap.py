"""Build a storage backend from a target string.

Accepted targets:

- ``memory://``: a fresh `MemoryStorage`.
- ``file:///some/dir`` or a plain filesystem path: `LocalStorage` rooted there.
- Any SQLAlchemy URL for PostgreSQL or a SQLite *file*
  (``sqlite:///certs.db``, ``postgresql+psycopg://user:pw@host/db``):
  `SqlAlchemyStorage`. The schema must already be migrated.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from sqlalchemy.engine import make_url

from certstore.adapters.db.dialects import DialectName
from certstore.adapters.storage import LocalStorage, MemoryStorage, SqlAlchemyStorage
from certstore.infrastructure.db.engine import make_engine
from certstore.interfaces.storage import Storage

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory"
FILE_SCHEME = "file"

_SQLITE_MEMORY_DATABASES = {None, "", ":memory:"}


def build_storage(target: str, *, lock_timeout: float | None = None) -> Storage:
    """Return the `Storage` backend described by `target`.

    Args:
        target: Storage target (see module docstring).
        lock_timeout: Overrides the backend's default lock timeout.

    Returns:
        A ready-to-use backend.

    Raises:
        ValueError: If the target is empty or names an in-memory SQLite database.
        UnsupportedDialect: If a database URL names an unsupported dialect.
    """
    if not target:
        raise ValueError("Storage target must not be empty")

    options: dict[str, Any] = {}
    if lock_timeout is not None:
        options["lock_timeout"] = lock_timeout

    if "://" not in target:
        logger.debug("Using local storage at %s", target)
        return LocalStorage(Path(target), **options)

    scheme = target.split("://", 1)[0].lower()
    if scheme == MEMORY_SCHEME:
        logger.debug("Using in-memory storage")
        return MemoryStorage(**options)
    if scheme == FILE_SCHEME:
        parsed = urlparse(target)
        root = Path(unquote(parsed.netloc + parsed.path))
        logger.debug("Using local storage at %s", root)
        return LocalStorage(root, **options)

    url = make_url(target)
    dialect = DialectName.from_string(url.drivername)
    if dialect is DialectName.SQLITE and url.database in _SQLITE_MEMORY_DATABASES:
        raise ValueError(
            "In-memory SQLite is not supported; use a database file or memory://"
        )
    logger.debug(
        "Using %s storage at %s",
        dialect.value,
        url.render_as_string(hide_password=True),
    )
    return SqlAlchemyStorage(make_engine(url), **options)
