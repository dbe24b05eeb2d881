"""certstore Storage Interface Package"""

from .context import Context
from .errors import (
    Cancelled,
    InvalidKey,
    LockError,
    LockTimeout,
    NotFound,
    NotLocked,
    StorageError,
    StorageUnavailable,
)
from .storage import KeyInfo, Storage

__all__ = [
    "Cancelled",
    "Context",
    "InvalidKey",
    "KeyInfo",
    "LockError",
    "LockTimeout",
    "NotFound",
    "NotLocked",
    "Storage",
    "StorageError",
    "StorageUnavailable",
]
