"""Pydantic schemas for undo/redo endpoints."""
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from models.version import VersionEntityType


class UndoRedoStatus(BaseModel):
    """Schema for the undo/redo availability of an entity in a session."""

    entity_type: VersionEntityType
    entity_id: UUID
    session_id: str
    can_undo: bool
    can_redo: bool
    undo_count: int = 0
    redo_count: int = 0


class RestoredRequirements(BaseModel):
    """Entities brought back from soft delete so a replay could resolve them."""

    component_ids: list[str] = Field(default_factory=list)
    layer_style_ids: list[str] = Field(default_factory=list)


class UndoRedoResponse(BaseModel):
    """Schema for the outcome of an undo or redo."""

    entity_type: VersionEntityType
    entity_id: UUID
    version_id: UUID  # The version that was undone or redone
    description: str | None
    state: Any
    content_hash: str | None
    can_undo: bool
    can_redo: bool
    selection: list[str] = Field(default_factory=list)  # Layer ids to select in the editor
    restored: RestoredRequirements = Field(default_factory=RestoredRequirements)
