"""
Scheduled cleanup task for version history.

Designed to run as a cron job (e.g., daily at 3 AM).

Usage:
    python -m tasks.cleanup

The task:
1. Prunes each entity's versions beyond the retention limit (oldest first)
2. Deletes versions of entities that no longer have a draft row
"""
import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import async_session_factory
from models.component import Component
from models.layer_style import LayerStyle
from models.page import PageLayers
from models.version import Version, VersionEntityType
from services.version_service import version_service

logger = logging.getLogger(__name__)


@dataclass
class CleanupStats:
    """Statistics from a cleanup run."""

    excess_deleted: int = 0
    orphaned_deleted: int = 0

    # Detailed breakdown for verification
    orphaned_by_entity_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "excess_deleted": self.excess_deleted,
            "orphaned_deleted": self.orphaned_deleted,
        }


async def cleanup_excess_versions(
    db: AsyncSession,
    max_versions: int | None = None,
) -> CleanupStats:
    """
    Delete the oldest versions of every entity holding more than ``max_versions``.

    Recording enforces the limit on insert; this catches entities whose limit
    was lowered or whose versions were written before the limit existed.

    Args:
        db: Database session.
        max_versions: Versions to keep per entity. Defaults to the configured limit.

    Returns:
        CleanupStats with excess_deleted set.
    """
    if max_versions is None:
        max_versions = get_settings().max_versions_per_entity

    stats = CleanupStats()
    stats.excess_deleted = await version_service.cleanup_old_versions(db, max_versions)
    if stats.excess_deleted > 0:
        logger.info(
            "Pruned %d versions beyond the limit of %d per entity",
            stats.excess_deleted,
            max_versions,
        )

    await db.commit()
    return stats


async def cleanup_orphaned_versions(db: AsyncSession) -> CleanupStats:
    """
    Delete versions of entities that no longer have a draft row.

    Versions are undo history for drafts; once the draft is gone (publishing
    purges soft-deleted drafts) they can never be replayed.

    Note: Soft-deleted drafts are NOT considered orphaned - they can still be
    restored, and their history with them.

    Returns:
        CleanupStats with orphan breakdown by entity type.
    """
    stats = CleanupStats()

    # Column each entity type's version entity_id refers to
    draft_key_columns = {
        VersionEntityType.PAGE_LAYERS: (PageLayers, PageLayers.page_id),
        VersionEntityType.COMPONENT: (Component, Component.id),
        VersionEntityType.LAYER_STYLE: (LayerStyle, LayerStyle.id),
    }

    for entity_type, (model, key_column) in draft_key_columns.items():
        # NOT EXISTS subquery over draft rows (soft-deleted included)
        draft_exists_subquery = (
            select(key_column)
            .where(key_column == Version.entity_id, model.is_published.is_(False))
            .exists()
        )

        delete_stmt = delete(Version).where(
            Version.entity_type == entity_type.value,
            ~draft_exists_subquery,
        )

        result = await db.execute(delete_stmt)
        deleted = result.rowcount

        if deleted > 0:
            stats.orphaned_by_entity_type[entity_type.value] = deleted
            stats.orphaned_deleted += deleted
            logger.info(
                "Cleaned %d orphaned versions for entity_type=%s",
                deleted,
                entity_type.value,
            )

    await db.commit()

    return stats


async def run_cleanup(db: AsyncSession | None = None) -> CleanupStats:
    """
    Run all cleanup tasks.

    Orphans are removed after pruning so both counts describe distinct rows
    as far as possible.

    Args:
        db: Database session. If None, creates one from async_session_factory.

    Returns:
        Combined CleanupStats from all cleanup operations.
    """
    logger.info("Starting version cleanup task")

    async def _run(session: AsyncSession) -> CleanupStats:
        excess_stats = await cleanup_excess_versions(session)
        orphan_stats = await cleanup_orphaned_versions(session)
        return CleanupStats(
            excess_deleted=excess_stats.excess_deleted,
            orphaned_deleted=orphan_stats.orphaned_deleted,
            orphaned_by_entity_type=orphan_stats.orphaned_by_entity_type,
        )

    if db is not None:
        stats = await _run(db)
    else:
        async with async_session_factory() as session:
            stats = await _run(session)

    logger.info("Cleanup complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """Entry point for running cleanup as a script."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_cleanup())


if __name__ == "__main__":
    main()
