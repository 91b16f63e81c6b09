"""Font model for Google, custom, and default site fonts."""
from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class Font(Base, DualStateMixin):
    """Site font. Custom fonts carry a storage location and a file hash."""

    __tablename__ = "fonts"
    __hashed_fields__ = (
        "name",
        "family",
        "type",
        "variants",
        "weights",
        "category",
        "kind",
        "url",
        "storage_path",
        "file_hash",
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)  # e.g. "open-sans"
    family: Mapped[str] = mapped_column(String(255), nullable=False)  # e.g. "Open Sans"
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="google")
    variants: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    weights: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    kind: Mapped[str | None] = mapped_column(String(50), nullable=True)  # e.g. "woff2"
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
