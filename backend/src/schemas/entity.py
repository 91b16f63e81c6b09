"""Pydantic schemas for the generic draft entity endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import inspect

from models.base import DualStateMixin, RowLifecycle
from services.entity_store import BOOKKEEPING_COLUMNS


class EntityCreate(BaseModel):
    """Schema for creating a draft. ``fields`` are the entity's own columns."""

    id: UUID | None = Field(default=None, description="Fix the logical id (e.g. when importing)")
    fields: dict[str, Any] = Field(default_factory=dict)


class EntityUpdate(BaseModel):
    """Schema for updating draft columns. Only the given fields change."""

    fields: dict[str, Any]


class EntityResponse(BaseModel):
    """Schema for one draft or published row."""

    id: UUID
    is_published: bool
    lifecycle: RowLifecycle
    content_hash: str | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    fields: dict[str, Any]

    @classmethod
    def from_row(cls, row: DualStateMixin) -> "EntityResponse":
        """Build a response from a model row, splitting bookkeeping from entity columns."""
        fields = {
            attr.key: getattr(row, attr.key)
            for attr in inspect(type(row)).column_attrs
            if attr.key not in BOOKKEEPING_COLUMNS
        }
        return cls(
            id=row.id,
            is_published=row.is_published,
            lifecycle=row.lifecycle,
            content_hash=row.content_hash,
            created_at=row.created_at,
            updated_at=row.updated_at,
            deleted_at=row.deleted_at,
            fields=fields,
        )


class EntityListResponse(BaseModel):
    """Schema for rows of one entity type."""

    items: list[EntityResponse]
    total: int
