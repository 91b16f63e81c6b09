"""Pydantic schemas for publish endpoints."""
from pydantic import BaseModel, Field

from services.entity_store import PublishableType


class PublishRequest(BaseModel):
    """Schema for publishing several entity types; omit types to publish everything."""

    types: list[PublishableType] | None = Field(
        default=None,
        description="Entity types to publish. Published in dependency order regardless "
        "of the order given.",
    )


class PublishStatsResponse(BaseModel):
    """Schema for counts of published rows changed for one type."""

    added: int
    updated: int
    deleted: int


class PublishResponse(BaseModel):
    """Schema for the outcome of publishing one or more types."""

    results: dict[PublishableType, PublishStatsResponse]
    total_changes: int


class PublishPreviewResponse(BaseModel):
    """Schema for pending (unpublished) changes per type."""

    pending: dict[PublishableType, PublishStatsResponse]
    has_changes: bool


class RevertResponse(BaseModel):
    """Schema for the outcome of discarding draft changes of one type."""

    publishable_type: PublishableType
    restored: int
    removed: int
