"""CMS collection, field, and item models."""
from uuid import UUID

from sqlalchemy import ForeignKeyConstraint, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class Collection(Base, DualStateMixin):
    """A CMS collection (e.g. "Blog posts")."""

    __tablename__ = "collections"
    __hashed_fields__ = ("name", "sorting", "order")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sorting: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CollectionField(Base, DualStateMixin):
    """Schema field of a collection."""

    __tablename__ = "collection_fields"
    __hashed_fields__ = ("collection_id", "name", "key", "type", "order", "settings")

    collection_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        ForeignKeyConstraint(
            ["collection_id", "is_published"],
            ["collections.id", "collections.is_published"],
            ondelete="CASCADE",
        ),
    )


class CollectionItem(Base, DualStateMixin):
    """Entry of a collection. Field values are keyed by field key."""

    __tablename__ = "collection_items"
    __hashed_fields__ = ("collection_id", "manual_order", "values")

    collection_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    manual_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    values: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        ForeignKeyConstraint(
            ["collection_id", "is_published"],
            ["collections.id", "collections.is_published"],
            ondelete="CASCADE",
        ),
    )
