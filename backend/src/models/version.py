"""Version model for patch-based undo/redo history of draft entities."""
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, UUIDv7Mixin


class VersionEntityType(StrEnum):
    """Entity types whose draft changes are recorded as versions."""

    PAGE_LAYERS = "page_layers"
    COMPONENT = "component"
    LAYER_STYLE = "layer_style"

    @property
    def is_tree(self) -> bool:
        """Whether the entity's state is a layer tree."""
        return self in (VersionEntityType.PAGE_LAYERS, VersionEntityType.COMPONENT)


class ActionType(StrEnum):
    """Type of change a version record describes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Version(Base, UUIDv7Mixin):
    """
    One recorded change to a draft entity.

    Stores both directions of the change as JSON patches:
    - redo: transforms the previous state into the current state
    - undo: transforms the current state back into the previous state

    previous_hash/current_hash are content hashes of the states on either side,
    so a replay can verify it is being applied to the expected base.

    Records are append-only and ordered by (created_at, id) per entity.
    """

    __tablename__ = "versions"

    # Polymorphic entity reference (no DB FK); cleaned up by tasks.cleanup
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    redo: Mapped[list] = mapped_column(JSONB, nullable=False)
    undo: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    # Full state every SNAPSHOT_INTERVAL versions
    snapshot: Mapped[dict | list | None] = mapped_column(JSONB, nullable=True)

    previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    current_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # "metadata" is reserved on declarative classes
    version_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.clock_timestamp(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_versions_entity_created", "entity_type", "entity_id", "created_at"),
        Index("ix_versions_session_id", "session_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Version(id={self.id}, entity_type={self.entity_type}, "
            f"entity_id={self.entity_id}, action_type={self.action_type})>"
        )
