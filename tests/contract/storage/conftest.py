"""Pytest fixtures for Storage contract tests.

Provided fixtures
-----------------
- **storage**: Parametrized backend factory returning a **fresh** `Storage`
  per test: ``memory``, ``local`` (temp directory), ``sqlite`` (temp database
  file migrated with Alembic) and ``postgres`` (Testcontainers; skipped
  without Docker).
- **second_storage**: Another instance sharing `storage`'s backing data but
  with its own lock identity, as a separate process would have. ``memory``
  has no such thing and is skipped.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from certstore.adapters.storage import LocalStorage, MemoryStorage, SqlAlchemyStorage
from certstore.interfaces.storage import Storage

# pylint: disable=redefined-outer-name

BACKENDS = ["memory", "local", "sqlite", "postgres"]


def _build(
    request: pytest.FixtureRequest, kind: str, root: Path, lock_timeout: float
) -> Storage:
    match kind:
        case "memory":
            return MemoryStorage(lock_timeout=lock_timeout)
        case "local":
            return LocalStorage(root, lock_timeout=lock_timeout)
        case "sqlite":
            engine = request.getfixturevalue("sqlite_engine_file")
            return SqlAlchemyStorage(engine, lock_timeout=lock_timeout)
        case "postgres":
            engine = request.getfixturevalue("postgres_engine")
            return SqlAlchemyStorage(engine, lock_timeout=lock_timeout)
        case _:
            raise ValueError(f"unknown storage type: {kind}")


@pytest.fixture(params=BACKENDS)
def storage(
    request: pytest.FixtureRequest, tmp_path: Path, lock_timeout: float
) -> Storage:
    """Return a fresh storage instance for the requested backend."""
    return _build(request, request.param, tmp_path / "store", lock_timeout)


@pytest.fixture
def second_storage(
    request: pytest.FixtureRequest,
    storage: Storage,
    tmp_path: Path,
    lock_timeout: float,
) -> Storage:
    """A second handle on the same backing data as `storage`."""
    if isinstance(storage, MemoryStorage):
        pytest.skip("memory storage has no shared backing data")
    kind = request.node.callspec.params["storage"]
    return _build(request, kind, tmp_path / "store", lock_timeout)
