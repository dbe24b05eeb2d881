"""SQLAlchemy table definitions for the SQL storage backend.

Only terminal keys are stored; directory keys are derived from key prefixes
at query time. Lock rows carry the ULID of the owning `SqlAlchemyStorage`
instance and an expiry, after which any owner may take the lock over.
"""

from sqlalchemy import Column, Integer, LargeBinary, String, Table

from certstore.adapters.db.metadata import metadata
from certstore.adapters.db.sa_types import UTCDateTime

#: Maximum key length accepted by the SQL backend.
MAX_KEY_LENGTH = 1024

storage_entries = Table(
    "storage_entries",
    metadata,
    Column(
        "key",
        String(MAX_KEY_LENGTH),
        primary_key=True,
        comment="Full terminal key.",
    ),
    Column("value", LargeBinary, nullable=False, comment="Stored bytes."),
    Column("size", Integer, nullable=False, comment="Length of value in bytes."),
    Column(
        "modified",
        UTCDateTime,
        nullable=False,
        comment="UTC time of the last store.",
    ),
)

storage_locks = Table(
    "storage_locks",
    metadata,
    Column(
        "key",
        String(MAX_KEY_LENGTH),
        primary_key=True,
        comment="Lock name.",
    ),
    Column(
        "owner",
        String(26),
        nullable=False,
        comment="ULID of the storage instance holding the lock.",
    ),
    Column(
        "expires",
        UTCDateTime,
        nullable=False,
        comment="UTC time after which the lock may be taken over.",
    ),
)
