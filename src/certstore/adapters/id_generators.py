"""ID generators for certstore.

Used to mint the owner token that identifies which storage instance holds a
file or database lock.
"""

import threading

from ulid import monotonic

# pylint: disable=too-few-public-methods


class ULIDGenerator:
    """Thread-safe monotonic ULID generator.

    ULIDs are unique, lexicographically sortable 26-character identifiers
    made of a timestamp and a random component. This generator uses the
    `ulid-py` library to create them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def new_id(self) -> str:
        """Generate a new ULID (serialized across threads)."""
        with self._lock:
            return str(monotonic.new())


_owner_ids = ULIDGenerator()


def new_owner_token() -> str:
    """Return a fresh lock owner token (a 26-character ULID)."""
    return _owner_ids.new_id()
