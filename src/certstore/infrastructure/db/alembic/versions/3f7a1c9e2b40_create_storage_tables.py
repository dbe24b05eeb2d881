"""Create storage_entries and storage_locks tables

Revision ID: 3f7a1c9e2b40
Revises:
Create Date: 2026-10-19

"""

# pylint: disable=invalid-name

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from certstore.adapters.db.sa_types import UTCDateTime

# pylint: disable=no-member

# revision identifiers, used by Alembic.
revision: str = "3f7a1c9e2b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "storage_entries",
        sa.Column(
            "key",
            sa.String(length=1024),
            nullable=False,
            comment="Full terminal key.",
        ),
        sa.Column("value", sa.LargeBinary(), nullable=False, comment="Stored bytes."),
        sa.Column(
            "size",
            sa.Integer(),
            nullable=False,
            comment="Length of value in bytes.",
        ),
        sa.Column(
            "modified",
            UTCDateTime(),
            nullable=False,
            comment="UTC time of the last store.",
        ),
        sa.PrimaryKeyConstraint("key", name=op.f("pk_storage_entries")),
    )

    op.create_table(
        "storage_locks",
        sa.Column(
            "key",
            sa.String(length=1024),
            nullable=False,
            comment="Lock name.",
        ),
        sa.Column(
            "owner",
            sa.String(length=26),
            nullable=False,
            comment="ULID of the storage instance holding the lock.",
        ),
        sa.Column(
            "expires",
            UTCDateTime(),
            nullable=False,
            comment="UTC time after which the lock may be taken over.",
        ),
        sa.PrimaryKeyConstraint("key", name=op.f("pk_storage_locks")),
    )


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_table("storage_locks")
    op.drop_table("storage_entries")
