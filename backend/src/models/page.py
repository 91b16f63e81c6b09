"""Page folder, page, and page layer tree models."""
from uuid import UUID

from sqlalchemy import Boolean, ForeignKeyConstraint, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class PageFolder(Base, DualStateMixin):
    """
    Folder grouping pages into a tree.

    The parent folder reference is not constrained; folder subtrees are always
    published together.
    """

    __tablename__ = "page_folders"
    __hashed_fields__ = ("name", "slug", "page_folder_id", "depth", "order", "settings")

    page_folder_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        Index(
            "ix_page_folders_parent",
            "page_folder_id",
            "is_published",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )


class Page(Base, DualStateMixin):
    """Page metadata. The layer tree lives in PageLayers."""

    __tablename__ = "pages"
    __hashed_fields__ = (
        "name",
        "slug",
        "settings",
        "is_index",
        "is_dynamic",
        "error_page",
        "page_folder_id",
        "order",
        "depth",
    )

    page_folder_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_index: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_dynamic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Error page type (401, 404, 500) or None for regular pages
    error_page: Mapped[int | None] = mapped_column(Integer, nullable=True)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        # Draft pages may only live in draft folders, published in published
        ForeignKeyConstraint(
            ["page_folder_id", "is_published"],
            ["page_folders.id", "page_folders.is_published"],
            ondelete="CASCADE",
        ),
        Index(
            "ix_pages_slug",
            "slug",
            "is_published",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )


class PageLayers(Base, DualStateMixin):
    """Layer tree of a page, stored as a JSONB array of layer nodes."""

    __tablename__ = "page_layers"
    __hashed_fields__ = ("layers", "generated_css")

    page_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    layers: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    generated_css: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        ForeignKeyConstraint(
            ["page_id", "is_published"],
            ["pages.id", "pages.is_published"],
            ondelete="CASCADE",
        ),
        Index(
            "ix_page_layers_page",
            "page_id",
            "is_published",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
