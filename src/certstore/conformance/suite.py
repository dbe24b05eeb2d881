"""Behavioral conformance checks for `Storage` backends.

`ConformanceSuite` drives a backend through a fixed, seeded script and raises
`ConformanceError` on the first deviation from the storage contract, naming
the operation, the key, and what was expected versus what happened.

Three check groups run in order, each independent of the others:

- `check_locking`: unlocking a never-locked key fails, lock/unlock of a fresh
  key succeeds, then concurrent workers hammer a handful of keys. A failed
  `lock` is a timeout and is retried; a failed `unlock` by the holder is fatal.
- `check_single_key`: the full lifecycle of one key (absent, stored with
  ``None``/empty/real values, loaded, deleted), while holding its lock.
- `check_directory`: directory keys implied by ``dir/k1``, ``dir/k/a/b`` and
  ``dir/k/c``, checked through `stat` and recursive/flat `list`.

Every generated key is deleted afterwards, best effort.

Typical usage:
    ```py
    storage = LocalStorage(tmp_path)
    ConformanceSuite(storage).run()
    ```
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Any

from certstore.interfaces.storage import (
    Context,
    InvalidKey,
    NotFound,
    Storage,
    StorageError,
)
from certstore.interfaces.storage import keys as keyspace

logger = logging.getLogger(__name__)

#: Prepended to every generated key; must not contain a separator.
KEY_PREFIX = "__test__key__"

CHECK_NAMES = ("check_locking", "check_single_key", "check_directory")


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


class ConformanceError(AssertionError):
    """A backend deviated from the storage contract.

    Attributes:
        operation (str): Storage operation that misbehaved.
        key (str): Key the operation was called with.
        expected (str): What the contract requires.
        actual (str): What the backend did.
    """

    def __init__(self, operation: str, key: str, expected: Any, actual: Any):
        super().__init__(
            f"{operation}({key!r}) failed: expected {expected}, got {actual}"
        )
        self.operation = operation
        self.key = key
        self.expected = expected
        self.actual = actual


class ConformanceSuite:  # pylint: disable=too-many-instance-attributes
    """Seeded conformance checks for one `Storage` instance.

    Args:
        storage: Backend under test.
        rng: Random source for key names; defaults to ``random.Random(0)`` so
            runs are reproducible. Owned by this suite.
        key_prefix: Prefix isolating generated keys from existing data.
        lock_keys: Number of keys in the lock stress test.
        workers_per_key: Concurrent workers per key in the lock stress test.
        iterations: Lock attempts per worker.
        join_timeout: Seconds the stress test may run before it is reported
            as hung.
        ctx: Context passed to every storage call.

    Raises:
        ValueError: If `key_prefix` contains ``/``.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        storage: Storage,
        rng: random.Random | None = None,
        *,
        key_prefix: str = KEY_PREFIX,
        lock_keys: int = 5,
        workers_per_key: int = 2,
        iterations: int = 5,
        join_timeout: float = 60.0,
        ctx: Context | None = None,
    ) -> None:
        if keyspace.SEPARATOR in key_prefix:
            raise ValueError(f"key prefix must not contain {keyspace.SEPARATOR!r}")
        self.storage = storage
        self.rng = rng if rng is not None else random.Random(0)
        self.key_prefix = key_prefix
        self.lock_keys = lock_keys
        self.workers_per_key = workers_per_key
        self.iterations = iterations
        self.join_timeout = join_timeout
        self.ctx = ctx
        self._keys_lock = threading.Lock()
        self._keys: list[str] = []

    # --- Running ---

    def run(self, on_pass: Callable[[str], None] | None = None) -> None:
        """Run every check group, then clean up.

        Args:
            on_pass: Called with the name of each check group that passed.

        Raises:
            ConformanceError: On the first contract violation.
        """
        logger.info("Checking %s", type(self.storage).__name__)
        try:
            for name in CHECK_NAMES:
                logger.info("Running %s", name)
                getattr(self, name)()
                if on_pass is not None:
                    on_pass(name)
        finally:
            self.cleanup()
        logger.info("All checks passed")

    # --- Keys ---

    def rand_key(self) -> str:
        """Return a fresh prefixed key and remember it for cleanup."""
        with self._keys_lock:
            key = f"{self.key_prefix}{self.rng.getrandbits(63)}"
            self._keys.append(key)
        return key

    @property
    def generated_keys(self) -> list[str]:
        """Every key this suite has generated or stored, in creation order."""
        with self._keys_lock:
            return list(self._keys)

    def cleanup(self) -> None:
        """Delete every tracked key, ignoring failures."""
        for key in reversed(self.generated_keys):
            try:
                self.storage.delete(key, ctx=self.ctx)
            except Exception as e:  # pylint: disable=broad-except
                logger.debug("cleanup: delete(%r) ignored: %s", key, e)

    def _track(self, *keys: str) -> None:
        with self._keys_lock:
            self._keys.extend(keys)

    # --- Check groups ---

    def check_locking(self) -> None:
        """Lock misuse, a basic lock/unlock cycle, and a concurrency stress test."""
        key = self.rand_key()
        self._expect_error("unlock", StorageError, key)
        self._expect_ok("lock", key)
        self._expect_ok("unlock", key)
        self._stress_locks([self.rand_key() for _ in range(self.lock_keys)])

    def check_single_key(self) -> None:
        """Lifecycle of one key, with the key's lock held throughout."""
        key = self.rand_key()
        self._expect_ok("lock", key)
        try:
            self._single_key_lifecycle(key)
        except Exception:
            self._release_quietly(key)
            raise
        self._expect_ok("unlock", key)

    def check_directory(self) -> None:
        """Directory keys implied by nested stores, via `stat` and `list`."""
        dir_key = self.rand_key()
        value = dir_key.encode()
        k1 = keyspace.join(dir_key, "k1")
        k2 = keyspace.join(dir_key, "k", "a", "b")
        k3 = keyspace.join(dir_key, "k", "c")
        sub = keyspace.join(dir_key, "k")
        self._track(k1, k2, k3)

        self._expect_error("list", NotFound, k1, True)
        self._expect_error("list", NotFound, k2, False)
        self._expect_error("list", NotFound, dir_key, False)
        self._expect_error("stat", NotFound, dir_key)
        self._expect_error("stat", NotFound, sub)

        for key in (k1, k2, k3):
            self._expect_ok("store", key, value)

        info = self._expect_ok("stat", dir_key)
        self._require("stat", dir_key, "key == queried key", info.key, dir_key)
        self._require("stat", dir_key, "is_terminal", info.is_terminal, False)

        info = self._expect_ok("stat", k2)
        self._require("stat", k2, "key == queried key", info.key, k2)
        self._require("stat", k2, "is_terminal", info.is_terminal, True)

        listed = sorted(self._expect_ok("list", dir_key, False))
        self._require("list", dir_key, "non-recursive listing", listed, [sub, k1])

        listed = sorted(self._expect_ok("list", dir_key, True))
        expected = [sub, keyspace.join(sub, "a"), k2, k3, k1]
        self._require("list", dir_key, "recursive listing", listed, expected)

    # --- Internal Helpers ---

    def _single_key_lifecycle(self, key: str) -> None:
        value = key.encode()
        self._require("exists", key, "exists() before store", self._exists(key), False)
        self._expect_error("load", NotFound, key)
        self._expect_error("stat", NotFound, key)
        self._expect_error("store", InvalidKey, "", b"")

        for empty in (None, b""):
            self._expect_ok("store", key, empty)
            loaded = self._expect_ok("load", key)
            self._require("load", key, f"value after storing {empty!r}", loaded, b"")

        self._expect_ok("store", key, value)
        self._require("exists", key, "exists() after store", self._exists(key), True)
        loaded = self._expect_ok("load", key)
        self._require("load", key, "stored value", loaded, value)

        self._expect_ok("delete", key)
        self._require("exists", key, "exists() after delete", self._exists(key), False)

    def _stress_locks(self, keys: list[str]) -> None:
        pool = ThreadPoolExecutor(
            max_workers=len(keys) * self.workers_per_key,
            thread_name_prefix="conformance-lock",
        )
        deadline = time.monotonic() + self.join_timeout
        try:
            groups = {
                key: [
                    pool.submit(self._lock_worker, key)
                    for _ in range(self.workers_per_key)
                ]
                for key in keys
            }
            for key, futures in groups.items():
                self._join(key, futures, deadline)
            everything = [f for futures in groups.values() for f in futures]
            self._join(self.key_prefix, everything, deadline)
        finally:
            # hung workers must not block the caller
            pool.shutdown(wait=False, cancel_futures=True)

    def _join(self, key: str, futures: list[Future[int]], deadline: float) -> None:
        done, pending = wait(
            futures,
            timeout=max(0.0, deadline - time.monotonic()),
            return_when=FIRST_EXCEPTION,
        )
        for future in done:
            future.result()
        if pending:
            raise ConformanceError(
                "lock",
                key,
                f"all lock workers to finish within {self.join_timeout:g}s",
                f"{len(pending)} still running",
            )

    def _lock_worker(self, key: str) -> int:
        acquired = 0
        for _ in range(self.iterations):
            try:
                self.storage.lock(key, ctx=self.ctx)
            except Exception as e:  # pylint: disable=broad-except
                logger.debug("lock(%r) failed, retrying: %s", key, e)
                continue
            time.sleep(0)
            try:
                self.storage.unlock(key, ctx=self.ctx)
            except Exception as e:  # pylint: disable=broad-except
                raise ConformanceError(
                    "unlock", key, "success for the lock holder", _describe(e)
                ) from e
            acquired += 1
        return acquired

    def _release_quietly(self, key: str) -> None:
        try:
            self.storage.unlock(key, ctx=self.ctx)
        except Exception as e:  # pylint: disable=broad-except
            logger.debug("unlock(%r) after failed check ignored: %s", key, e)

    def _exists(self, key: str) -> bool:
        return self._expect_ok("exists", key)

    def _expect_ok(self, operation: str, *args: Any) -> Any:
        """Call ``storage.<operation>(*args)``; any exception is a violation."""
        key = args[0]
        try:
            return getattr(self.storage, operation)(*args, ctx=self.ctx)
        except Exception as e:  # pylint: disable=broad-except
            raise ConformanceError(operation, key, "success", _describe(e)) from e

    def _expect_error(
        self, operation: str, error: type[StorageError], *args: Any
    ) -> None:
        """Call ``storage.<operation>(*args)``, requiring it to raise `error`."""
        key = args[0]
        try:
            result = getattr(self.storage, operation)(*args, ctx=self.ctx)
        except error:
            return
        except Exception as e:  # pylint: disable=broad-except
            raise ConformanceError(operation, key, error.__name__, _describe(e)) from e
        raise ConformanceError(operation, key, error.__name__, f"success ({result!r})")

    @staticmethod
    def _require(
        operation: str, key: str, what: str, actual: Any, expected: Any
    ) -> None:
        if actual != expected:
            raise ConformanceError(
                operation, key, f"{what} == {expected!r}", repr(actual)
            )
