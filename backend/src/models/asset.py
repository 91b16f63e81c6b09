"""Asset folder and asset models. File bytes live in external storage."""
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKeyConstraint, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class AssetFolder(Base, DualStateMixin):
    """Folder grouping assets. Parent reference is unconstrained, like page folders."""

    __tablename__ = "asset_folders"
    __hashed_fields__ = ("asset_folder_id", "name", "depth", "order")

    asset_folder_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Asset(Base, DualStateMixin):
    """Uploaded file metadata."""

    __tablename__ = "assets"
    __hashed_fields__ = (
        "asset_folder_id",
        "filename",
        "storage_path",
        "public_url",
        "file_size",
        "mime_type",
        "width",
        "height",
    )

    asset_folder_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    public_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        ForeignKeyConstraint(
            ["asset_folder_id", "is_published"],
            ["asset_folders.id", "asset_folders.is_published"],
            ondelete="CASCADE",
        ),
    )
