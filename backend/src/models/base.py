"""SQLAlchemy declarative base with common mixins."""
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at columns.

    All timestamps are timezone-aware (stored as TIMESTAMP WITH TIME ZONE in PostgreSQL).

    Uses clock_timestamp() instead of now() to get actual wall-clock time rather than
    transaction start time. This ensures accurate timestamps when multiple operations
    occur within the same database transaction.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.clock_timestamp(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.clock_timestamp(),
        nullable=False,
    )


class UUIDv7Mixin:
    """
    Mixin that adds a UUIDv7 primary key.

    UUIDv7 values are time-ordered, so inserts stay index-friendly and ordering
    by id approximates ordering by creation time.
    """

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid7,
    )


class RowLifecycle(StrEnum):
    """
    Lifecycle of one side (draft or published) of a versioned entity.

    ACTIVE -> SOFT_DELETED -> HARD_DELETED. A row that does not exist at all is
    treated as HARD_DELETED.
    """

    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"
    HARD_DELETED = "hard_deleted"


class DualStateMixin(TimestampMixin):
    """
    Mixin for entities that exist as a draft row and a published row.

    Both rows share the same logical ``id`` and are distinguished by
    ``is_published``; the primary key is the pair. The editor only mutates the
    draft row. The published row is only written by publishing, as a copy of the
    draft content.

    Subclasses declare ``__hashed_fields__``: the semantic columns that feed
    ``content_hash``. Timestamps and bookkeeping columns are never hashed.
    """

    __hashed_fields__: tuple[str, ...] = ()

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid7,
    )
    is_published: Mapped[bool] = mapped_column(
        Boolean,
        primary_key=True,
        default=False,
    )
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )

    @property
    def lifecycle(self) -> RowLifecycle:
        """Current lifecycle state of this row."""
        if self.deleted_at is not None:
            return RowLifecycle.SOFT_DELETED
        return RowLifecycle.ACTIVE

    def hashed_values(self) -> dict:
        """Return the semantic field values that make up the content hash."""
        return {name: getattr(self, name) for name in self.__hashed_fields__}
