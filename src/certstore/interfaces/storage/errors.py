"""Exceptions for storage operations.

Every backend raises only these exceptions from the `Storage` operations so
callers can tell "not found" apart from every other failure without knowing
which backend they talk to.
"""


class StorageError(Exception):
    """Base class for storage errors."""


class InvalidKey(StorageError, ValueError):
    """The key is malformed (empty, or has empty/relative path segments).

    Attributes:
        key (str): The rejected key.
        reason (str): Why the key was rejected.
    """

    def __init__(self, key: str, reason: str = "empty key"):
        super().__init__(f"Invalid key {key!r}: {reason}")
        self.key = key
        self.reason = reason


class NotFound(StorageError):
    """The key does not exist (or has no loadable value).

    Attributes:
        key (str): The missing key.
    """

    def __init__(self, key: str):
        super().__init__(f"Key {key!r} not found")
        self.key = key


class LockError(StorageError):
    """Base class for lock acquisition and release failures."""

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class LockTimeout(LockError):
    """The lock could not be acquired before the backend's lock timeout.

    Callers should treat this as retryable.

    Attributes:
        key (str): The contended lock name.
        timeout (float): Seconds waited before giving up.
    """

    def __init__(self, key: str, timeout: float):
        super().__init__(key, f"Timed out after {timeout:g}s waiting for lock {key!r}")
        self.timeout = timeout


class NotLocked(LockError):
    """Unlock was requested for a lock the caller does not hold."""

    def __init__(self, key: str):
        super().__init__(key, f"Lock {key!r} is not held")


class Cancelled(StorageError):
    """The operation's context was cancelled or its deadline passed."""


class StorageUnavailable(StorageError):
    """Opaque backend failure (I/O, driver, connectivity); callers may retry."""
