"""Component model for reusable layer trees referenced by layers via componentId."""
from sqlalchemy import Index, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, DualStateMixin


class Component(Base, DualStateMixin):
    """Reusable component - a named layer tree that page layers can instantiate."""

    __tablename__ = "components"
    __hashed_fields__ = ("name", "layers")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    layers: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    __table_args__ = (
        Index(
            "ix_components_name",
            "name",
            "is_published",
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
