"""Locale model for translated site variants."""
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class Locale(Base, DualStateMixin):
    """A site locale such as 'en' or 'fr'."""

    __tablename__ = "locales"
    __hashed_fields__ = ("code", "label", "is_default")

    code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
