"""Integration tests for `LocalStorage` on a real filesystem.

These cover what the shared contract tests cannot see: the on-disk layout,
stale lock files left by crashed processes, lock exclusion across separate
processes, and the one hierarchy case the filesystem cannot represent.
"""

from __future__ import annotations

import json
import logging
import multiprocessing
import os
import time
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

import pytest

from certstore.adapters.storage import LocalStorage
from certstore.interfaces.storage import (
    InvalidKey,
    LockTimeout,
    NotFound,
    NotLocked,
    StorageUnavailable,
)

# pylint: disable=redefined-outer-name


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def storage(root: Path) -> LocalStorage:
    return LocalStorage(root, lock_timeout=2.0)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def test_keys_map_onto_nested_files(storage: LocalStorage, root: Path):
    """``a/b/c`` is the file ``keys/a/b/c``."""
    storage.store("acme/example.com/cert.pem", b"pem")
    assert (root / "keys" / "acme" / "example.com" / "cert.pem").read_bytes() == b"pem"


def test_store_leaves_no_temporary_files(storage: LocalStorage, root: Path):
    """Writes go through ``tmp/`` and are renamed into place."""
    for i in range(5):
        storage.store("k", str(i).encode())
    assert storage.load("k") == b"4"
    assert not list((root / "tmp").iterdir())


def test_delete_prunes_empty_directories(storage: LocalStorage, root: Path):
    """Directories vanish with their last file, up to ``keys/``."""
    storage.store("a/b/c", b"1")
    storage.store("a/x", b"2")
    storage.delete("a/b/c")
    assert not (root / "keys" / "a" / "b").exists()
    assert (root / "keys" / "a").is_dir()
    storage.delete("a/x")
    assert not list((root / "keys").iterdir())
    assert (root / "keys").is_dir()


def test_nul_byte_in_key_is_invalid(storage: LocalStorage):
    """Paths cannot carry NUL."""
    with pytest.raises(InvalidKey):
        storage.store("bad\x00key", b"x")
    assert storage.exists("bad\x00key") is False


def test_file_cannot_become_a_directory(storage: LocalStorage):
    """A stored key cannot gain children on a filesystem."""
    storage.store("p", b"parent")
    with pytest.raises(StorageUnavailable):
        storage.store("p/child", b"child")
    assert storage.load("p") == b"parent"
    with pytest.raises(NotFound):
        storage.load("p/child")


def test_directory_cannot_become_a_file(storage: LocalStorage, root: Path):
    """Storing onto a directory key fails and leaves no temporary file."""
    storage.store("p/child", b"child")
    with pytest.raises(StorageUnavailable):
        storage.store("p", b"parent")
    assert storage.list("p") == ["p/child"]
    assert not list((root / "tmp").iterdir())


# ---------------------------------------------------------------------------
# Lock files
# ---------------------------------------------------------------------------


def test_lock_file_records_owner(storage: LocalStorage, root: Path):
    """The lock file names its holder; unlock removes it."""
    storage.lock("acme/example.com")
    path = root / "locks" / "acme%2Fexample.com.lock"
    meta = json.loads(path.read_text(encoding="utf-8"))
    assert meta["pid"] == os.getpid()
    assert len(meta["owner"]) == 26
    assert "created" in meta
    storage.unlock("acme/example.com")
    assert not path.exists()


def test_stale_lock_is_broken(root: Path, caplog: pytest.LogCaptureFixture):
    """A lock file older than stale_after is removed by the next locker."""
    crashed = LocalStorage(root)
    crashed.lock("k")
    old = time.time() - 3600
    os.utime(root / "locks" / "k.lock", (old, old))

    survivor = LocalStorage(root, lock_timeout=1.0, stale_after=60)
    with caplog.at_level(logging.WARNING, logger="certstore"):
        survivor.lock("k")
    assert "Breaking stale lock" in caplog.text

    with pytest.raises(NotLocked):
        crashed.unlock("k")
    survivor.unlock("k")


def test_fresh_lock_is_not_broken(root: Path):
    """A recent lock file blocks other instances until the timeout."""
    holder = LocalStorage(root)
    holder.lock("k")
    waiter = LocalStorage(root, lock_timeout=0.2, stale_after=3600)
    with pytest.raises(LockTimeout):
        waiter.lock("k")
    holder.unlock("k")


def test_replaced_stale_lock_survives_late_breaker(root: Path):
    """A waiter that saw the old stale file never removes its replacement."""
    crashed = LocalStorage(root)
    crashed.lock("k")
    path = root / "locks" / "k.lock"
    old = time.time() - 3600
    os.utime(path, (old, old))
    seen = path.stat()

    winner = LocalStorage(root, lock_timeout=1.0, stale_after=60)
    winner.lock("k")

    late = LocalStorage(root, lock_timeout=0.2, stale_after=60)
    late._remove_stale_lock(path, seen)  # pylint: disable=protected-access

    assert path.exists()
    assert [p.name for p in (root / "locks").iterdir()] == ["k.lock"]
    with pytest.raises(LockTimeout):
        late.lock("k")
    winner.unlock("k")


def test_unreadable_lock_meta_is_not_ours(storage: LocalStorage, root: Path):
    """A half-written lock file never counts as held by the caller."""
    (root / "locks" / "k.lock").write_text("{", encoding="utf-8")
    with pytest.raises(NotLocked):
        storage.unlock("k")


# ---------------------------------------------------------------------------
# Cross-process exclusion
# ---------------------------------------------------------------------------


def _increment(root: str, rounds: int) -> None:
    storage = LocalStorage(root, lock_timeout=30.0, poll_interval=0.01)
    for _ in range(rounds):
        storage.lock("counter")
        try:
            try:
                value = int(storage.load("counter"))
            except NotFound:
                value = 0
            storage.store("counter", str(value + 1).encode())
        finally:
            storage.unlock("counter")


@pytest.mark.slow
def test_lock_excludes_other_processes(root: Path):
    """Read-modify-write under the lock loses no increments across processes."""
    LocalStorage(root)
    processes, rounds = 4, 25
    ctx = multiprocessing.get_context("spawn")
    with ProcessPoolExecutor(max_workers=processes, mp_context=ctx) as pool:
        futures = [pool.submit(_increment, str(root), rounds) for _ in range(processes)]
        for f in futures:
            f.result(timeout=120)
    assert LocalStorage(root).load("counter") == str(processes * rounds).encode()
