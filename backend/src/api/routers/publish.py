"""Publish endpoints: promote drafts to published rows, or discard draft changes."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_publish_service, get_state_cache
from core.state_cache import PreviousStateCache
from schemas.publish import (
    PublishPreviewResponse,
    PublishRequest,
    PublishResponse,
    PublishStatsResponse,
    RevertResponse,
)
from services.entity_store import PublishableType
from services.publish_service import PublishService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/publish", tags=["publish"])

# Reverting these types rewrites versioned draft state behind the recorder's back
_VERSIONED_TYPES = frozenset({
    PublishableType.PAGE_LAYERS,
    PublishableType.COMPONENTS,
    PublishableType.LAYER_STYLES,
})


@router.post("/", response_model=PublishResponse)
async def publish(
    data: PublishRequest | None = None,
    db: AsyncSession = Depends(get_async_session),
    publisher: PublishService = Depends(get_publish_service),
) -> PublishResponse:
    """
    Publish draft changes of the given types (all types if none given).

    Types are published in dependency order. Each write batch is committed,
    so on failure the types and batches before it stay published; publishing
    again completes the rest.
    """
    results = await publisher.publish_all(db, data.types if data else None)
    return PublishResponse(
        results={
            publishable_type: PublishStatsResponse(**stats.to_dict())
            for publishable_type, stats in results.items()
        },
        total_changes=sum(stats.total for stats in results.values()),
    )


@router.get("/preview", response_model=PublishPreviewResponse)
async def preview(
    db: AsyncSession = Depends(get_async_session),
    publisher: PublishService = Depends(get_publish_service),
) -> PublishPreviewResponse:
    """Get what publishing would change, per type, without writing."""
    pending = await publisher.preview(db)
    return PublishPreviewResponse(
        pending={
            publishable_type: PublishStatsResponse(**stats.to_dict())
            for publishable_type, stats in pending.items()
        },
        has_changes=any(stats.total for stats in pending.values()),
    )


@router.post("/{publishable_type}", response_model=PublishStatsResponse)
async def publish_entity_type(
    publishable_type: PublishableType,
    db: AsyncSession = Depends(get_async_session),
    publisher: PublishService = Depends(get_publish_service),
) -> PublishStatsResponse:
    """Publish draft changes of one entity type."""
    stats = await publisher.publish_entity_type(db, publishable_type)
    return PublishStatsResponse(**stats.to_dict())


@router.post("/{publishable_type}/revert", response_model=RevertResponse)
async def revert_entity_type(
    publishable_type: PublishableType,
    db: AsyncSession = Depends(get_async_session),
    publisher: PublishService = Depends(get_publish_service),
    cache: PreviousStateCache = Depends(get_state_cache),
) -> RevertResponse:
    """
    Discard unpublished draft changes of one entity type.

    Drafts are overwritten with their published content; drafts that were
    never published are deleted.
    """
    stats = await publisher.revert_entity_type(db, publishable_type)
    if publishable_type in _VERSIONED_TYPES:
        # Baselines may describe discarded drafts; the next load reseeds them
        cache.clear()
        logger.info("Cleared version baselines after reverting %s", publishable_type)
    return RevertResponse(publishable_type=publishable_type, **stats.to_dict())
