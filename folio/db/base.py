from advanced_alchemy.base import BigIntAuditBase, UUIDAuditBase


class Base(UUIDAuditBase):
    """Base model with UUID primary key and created_at/updated_at columns."""

    __abstract__ = True


class SequencedBase(BigIntAuditBase):
    """Base model with an auto-incrementing integer primary key.

    Used for append-only tables where insertion order must be recoverable.
    """

    __abstract__ = True
