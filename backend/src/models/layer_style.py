"""LayerStyle model for shared style definitions referenced by layers via styleId."""
from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class LayerStyle(Base, DualStateMixin):
    """Shared style: a class string plus structured design values."""

    __tablename__ = "layer_styles"
    __hashed_fields__ = ("name", "classes", "design")

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    classes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    design: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
