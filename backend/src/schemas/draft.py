"""Pydantic schemas for draft state endpoints."""
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from models.version import VersionEntityType


class DraftUpdate(BaseModel):
    """
    Schema for saving a new draft state.

    ``state`` is the layer tree for page layers and components, or
    ``{"classes": ..., "design": ...}`` for a layer style.
    """

    state: Any = Field(
        description="A list of layer nodes for layer trees, an object for a layer style",
    )
    session_id: str | None = Field(default=None, max_length=100)
    metadata: dict | None = Field(
        default=None,
        description="Extra version metadata; a 'requirements' entry is merged with "
        "the references found in the tree",
    )


class DraftResponse(BaseModel):
    """Schema for the current draft state of a versioned entity."""

    entity_type: VersionEntityType
    entity_id: UUID
    state: Any
    content_hash: str | None
    version_id: UUID | None = None  # Version recorded by this save, if any
