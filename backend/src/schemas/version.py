"""Pydantic schemas for version history endpoints."""
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.version import ActionType, VersionEntityType


class PatchOperationSchema(BaseModel):
    """One JSON patch operation."""

    op: Literal["add", "remove", "replace"]
    path: str
    value: Any = None


class VersionCreate(BaseModel):
    """Payload for persisting a version record."""

    entity_type: VersionEntityType
    entity_id: UUID
    action_type: ActionType = ActionType.UPDATE
    description: str | None = Field(default=None, max_length=500)
    redo: list[PatchOperationSchema]
    undo: list[PatchOperationSchema] | None = None
    previous_hash: str | None = Field(default=None, max_length=64)
    current_hash: str = Field(max_length=64)
    session_id: str | None = Field(default=None, max_length=100)
    metadata: dict | None = None

    def patch_dump(self, field: Literal["redo", "undo"]) -> list[dict] | None:
        """Dump a patch, omitting ``value`` on removals as RFC 6902 does."""
        operations = getattr(self, field)
        if operations is None:
            return None
        dumped = []
        for operation in operations:
            item = operation.model_dump()
            if operation.op == "remove":
                item.pop("value", None)
            dumped.append(item)
        return dumped


class VersionResponse(BaseModel):
    """Schema for a single stored version record."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    entity_type: VersionEntityType
    entity_id: UUID
    action_type: ActionType
    description: str | None
    redo: list[dict]
    undo: list[dict] | None
    previous_hash: str | None
    current_hash: str
    session_id: str | None
    metadata: dict | None = Field(default=None, validation_alias="version_metadata")
    created_at: datetime


class VersionListResponse(BaseModel):
    """Schema for paginated version lists."""

    items: list[VersionResponse]
    total: int
    offset: int
    limit: int
    has_more: bool


class VersionSummary(BaseModel):
    """Lightweight version entry for history lists (no patches)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action_type: ActionType
    description: str | None
    session_id: str | None
    created_at: datetime


class VersionSummaryListResponse(BaseModel):
    """Schema for the history summary of one entity."""

    items: list[VersionSummary]
    total: int


class VersionSnapshotResponse(BaseModel):
    """Full entity state stored with a version."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: VersionEntityType
    entity_id: UUID
    snapshot: Any
    current_hash: str
    created_at: datetime
