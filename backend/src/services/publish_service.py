"""
Publishing: promote draft rows to published rows.

For each entity type, every draft row (soft-deleted ones included) is compared
with its published counterpart by content hash. Only the differences are
written:

- active draft, no published row      -> insert published copy
- active draft, hash differs          -> update published copy
- soft-deleted draft with published   -> delete published row
- published row with no draft at all  -> delete published row (orphan)

Soft-deleted drafts are hard-deleted once their published row is gone,
completing their lifecycle. Because classification is by hash, publishing
again with no draft changes performs no writes.

Writes are committed batch by batch. A failed batch is rolled back and
reported; batches before it stay applied and a retry picks up the rest.
"""
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy import delete, inspect
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import DualStateMixin, RowLifecycle
from services.content_hash import compute_entity_hash
from services.entity_store import DualStateRepository, PublishableType, get_repository
from services.exceptions import PublishBatchError

logger = logging.getLogger(__name__)

# Rows per write statement
DEFAULT_BATCH_SIZE = 500

# Parents before children so composite foreign keys resolve on insert
PUBLISH_ORDER: tuple[PublishableType, ...] = (
    PublishableType.PAGE_FOLDERS,
    PublishableType.PAGES,
    PublishableType.PAGE_LAYERS,
    PublishableType.COMPONENTS,
    PublishableType.LAYER_STYLES,
    PublishableType.FONTS,
    PublishableType.LOCALES,
    PublishableType.ASSET_FOLDERS,
    PublishableType.ASSETS,
    PublishableType.COLLECTIONS,
    PublishableType.COLLECTION_FIELDS,
    PublishableType.COLLECTION_ITEMS,
)


class PublishAction(StrEnum):
    """What publishing does with one entity id."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SKIP = "skip"


def classify_row(
    draft_lifecycle: RowLifecycle,
    draft_hash: str | None,
    published_hash: str | None,
) -> PublishAction:
    """
    Decide the publish action for one entity id.

    Args:
        draft_lifecycle: Lifecycle of the draft row (HARD_DELETED if there is none).
        draft_hash: Content hash of the draft row.
        published_hash: Content hash of the published row, None if never published.

    Returns:
        The action to take.
    """
    has_published = published_hash is not None
    match draft_lifecycle:
        case RowLifecycle.ACTIVE:
            if not has_published:
                return PublishAction.INSERT
            if draft_hash != published_hash:
                return PublishAction.UPDATE
            return PublishAction.SKIP
        case RowLifecycle.SOFT_DELETED | RowLifecycle.HARD_DELETED:
            return PublishAction.DELETE if has_published else PublishAction.SKIP
        case _:
            assert_never(draft_lifecycle)


@dataclass
class PublishStats:
    """Counts of published rows added, updated, and deleted."""

    added: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        """Total number of published rows changed."""
        return self.added + self.updated + self.deleted

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {"added": self.added, "updated": self.updated, "deleted": self.deleted}


@dataclass
class PublishPlan:
    """Writes needed to bring the published rows of one type in line with the drafts."""

    upserts: list[DualStateMixin] = field(default_factory=list)
    inserted_ids: list[UUID] = field(default_factory=list)
    updated_ids: list[UUID] = field(default_factory=list)
    # Published rows whose draft was soft-deleted
    delete_published_ids: list[UUID] = field(default_factory=list)
    # Soft-deleted drafts to hard-delete (whether or not they were ever published)
    purge_draft_ids: list[UUID] = field(default_factory=list)
    # Published rows with no draft row at all
    orphan_published_ids: list[UUID] = field(default_factory=list)

    @property
    def stats(self) -> PublishStats:
        """Counts this plan will produce."""
        return PublishStats(
            added=len(self.inserted_ids),
            updated=len(self.updated_ids),
            deleted=len(self.delete_published_ids) + len(self.orphan_published_ids),
        )

    @property
    def is_noop(self) -> bool:
        """True when publishing would write nothing."""
        return not (
            self.upserts
            or self.delete_published_ids
            or self.purge_draft_ids
            or self.orphan_published_ids
        )


def _hash_of(row: DualStateMixin) -> str:
    return row.content_hash or compute_entity_hash(row)


def plan_publish(
    drafts: Iterable[DualStateMixin],
    published: Iterable[DualStateMixin],
) -> PublishPlan:
    """
    Compare draft and published rows of one entity type.

    Args:
        drafts: All draft rows, soft-deleted included.
        published: All published rows.

    Returns:
        The plan of writes; computing it performs no I/O.
    """
    plan = PublishPlan()
    published_by_id = {row.id: row for row in published}
    draft_ids: set[UUID] = set()

    for draft in drafts:
        draft_ids.add(draft.id)
        counterpart = published_by_id.get(draft.id)
        action = classify_row(
            draft.lifecycle,
            _hash_of(draft),
            _hash_of(counterpart) if counterpart is not None else None,
        )
        match action:
            case PublishAction.INSERT:
                plan.upserts.append(draft)
                plan.inserted_ids.append(draft.id)
            case PublishAction.UPDATE:
                plan.upserts.append(draft)
                plan.updated_ids.append(draft.id)
            case PublishAction.DELETE:
                plan.delete_published_ids.append(draft.id)
            case PublishAction.SKIP:
                pass
        if draft.lifecycle is RowLifecycle.SOFT_DELETED:
            plan.purge_draft_ids.append(draft.id)

    for row_id, row in published_by_id.items():
        if row_id in draft_ids:
            continue
        action = classify_row(RowLifecycle.HARD_DELETED, None, _hash_of(row))
        if action is PublishAction.DELETE:
            plan.orphan_published_ids.append(row_id)

    return plan


@dataclass
class RevertStats:
    """Counts of drafts restored from published rows and drafts removed."""

    restored: int = 0
    removed: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {"restored": self.restored, "removed": self.removed}


def _chunks(items: Sequence[Any], size: int) -> Iterable[tuple[int, Sequence[Any]]]:
    for batch_index, start in enumerate(range(0, len(items), size)):
        yield batch_index, items[start:start + size]


class PublishService:
    """Runs publish and revert for each publishable entity type."""

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.batch_size = batch_size

    async def _load(
        self,
        db: AsyncSession,
        repository: DualStateRepository,
    ) -> tuple[list[DualStateMixin], list[DualStateMixin]]:
        drafts = await repository.list_drafts(db, include_deleted=True)
        published = await repository.list_published(db, include_deleted=True)
        return drafts, published

    async def plan(self, db: AsyncSession, publishable_type: PublishableType) -> PublishPlan:
        """Compute (without writing) what publishing a type would do."""
        drafts, published = await self._load(db, get_repository(publishable_type))
        return plan_publish(drafts, published)

    async def preview(self, db: AsyncSession) -> dict[PublishableType, PublishStats]:
        """Pending publish counts for every type."""
        return {
            publishable_type: (await self.plan(db, publishable_type)).stats
            for publishable_type in PUBLISH_ORDER
        }

    async def publish_entity_type(
        self,
        db: AsyncSession,
        publishable_type: PublishableType,
    ) -> PublishStats:
        """
        Publish all draft changes of one entity type.

        Args:
            db: Database session. Committed after every batch.
            publishable_type: The entity type to publish.

        Returns:
            Counts of published rows added, updated, and deleted.

        Raises:
            PublishBatchError: If a write batch fails. Earlier batches stay applied.
        """
        publishable_type = PublishableType(publishable_type)
        repository = get_repository(publishable_type)
        drafts, published = await self._load(db, repository)
        plan = plan_publish(drafts, published)

        if plan.is_noop:
            logger.debug("Nothing to publish for %s", publishable_type)
            return plan.stats

        model = repository.model
        now = datetime.now(UTC)
        await self._upsert(
            db,
            publishable_type,
            model,
            [self._row_values(model, row, is_published=True, now=now) for row in plan.upserts],
            step="upsert",
        )
        await self._delete(db, publishable_type, model, plan.delete_published_ids, True, "delete")
        await self._delete(db, publishable_type, model, plan.purge_draft_ids, False, "purge")
        await self._delete(
            db, publishable_type, model, plan.orphan_published_ids, True, "orphan cleanup",
        )

        stats = plan.stats
        logger.info(
            "Published %s: %d added, %d updated, %d deleted",
            publishable_type,
            stats.added,
            stats.updated,
            stats.deleted,
        )
        return stats

    async def publish_all(
        self,
        db: AsyncSession,
        publishable_types: Iterable[PublishableType] | None = None,
    ) -> dict[PublishableType, PublishStats]:
        """
        Publish several entity types in dependency order.

        Types are independent: if one fails, the types before it remain
        published and the error propagates.
        """
        requested = set(PUBLISH_ORDER if publishable_types is None else publishable_types)
        results: dict[PublishableType, PublishStats] = {}
        for publishable_type in PUBLISH_ORDER:
            if publishable_type in requested:
                results[publishable_type] = await self.publish_entity_type(db, publishable_type)
        return results

    async def revert_entity_type(
        self,
        db: AsyncSession,
        publishable_type: PublishableType,
    ) -> RevertStats:
        """
        Discard draft changes of one type, making drafts match the published rows.

        Drafts that differ from (or are missing for) a published row are
        overwritten with the published content and undeleted. Drafts that were
        never published are hard-deleted.

        Raises:
            PublishBatchError: If a write batch fails.
        """
        publishable_type = PublishableType(publishable_type)
        repository = get_repository(publishable_type)
        drafts, published = await self._load(db, repository)
        drafts_by_id = {row.id: row for row in drafts}
        published_ids = {row.id for row in published}

        model = repository.model
        now = datetime.now(UTC)
        restore_values = []
        for row in published:
            draft = drafts_by_id.get(row.id)
            if (
                draft is None
                or draft.lifecycle is not RowLifecycle.ACTIVE
                or _hash_of(draft) != row.content_hash
            ):
                restore_values.append(self._row_values(model, row, is_published=False, now=now))
        unpublished_ids = [row.id for row in drafts if row.id not in published_ids]

        await self._delete(db, publishable_type, model, unpublished_ids, False, "revert delete")
        await self._upsert(db, publishable_type, model, restore_values, step="revert upsert")

        stats = RevertStats(restored=len(restore_values), removed=len(unpublished_ids))
        logger.info(
            "Reverted %s: %d restored, %d removed",
            publishable_type,
            stats.restored,
            stats.removed,
        )
        return stats

    async def revert_all(self, db: AsyncSession) -> dict[PublishableType, RevertStats]:
        """Revert every entity type in dependency order."""
        return {
            publishable_type: await self.revert_entity_type(db, publishable_type)
            for publishable_type in PUBLISH_ORDER
        }

    @staticmethod
    def _row_values(
        model: type[DualStateMixin],
        row: DualStateMixin,
        is_published: bool,
        now: datetime,
    ) -> dict[str, Any]:
        """Copy a row's column values onto the other side of the pair."""
        values = {
            attr.columns[0].name: getattr(row, attr.key)
            for attr in inspect(model).column_attrs
        }
        values["is_published"] = is_published
        values["deleted_at"] = None
        values["updated_at"] = now
        values["content_hash"] = _hash_of(row)
        return values

    async def _upsert(
        self,
        db: AsyncSession,
        publishable_type: PublishableType,
        model: type[DualStateMixin],
        rows: list[dict[str, Any]],
        step: str,
    ) -> None:
        table = model.__table__
        applied = 0
        for batch_index, batch in _chunks(rows, self.batch_size):
            stmt = pg_insert(table).values(list(batch))
            stmt = stmt.on_conflict_do_update(
                index_elements=["id", "is_published"],
                set_={
                    column.name: stmt.excluded[column.name]
                    for column in table.columns
                    if column.name not in ("id", "is_published", "created_at")
                },
            )
            try:
                await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.exception(
                    "Publish %s of %s failed at batch %d", step, publishable_type, batch_index,
                )
                raise PublishBatchError(publishable_type, batch_index, applied, step) from e
            applied += len(batch)

    async def _delete(
        self,
        db: AsyncSession,
        publishable_type: PublishableType,
        model: type[DualStateMixin],
        ids: list[UUID],
        is_published: bool,
        step: str,
    ) -> None:
        applied = 0
        for batch_index, batch in _chunks(ids, self.batch_size):
            stmt = (
                delete(model)
                .where(model.id.in_(list(batch)), model.is_published.is_(is_published))
                .execution_options(synchronize_session="fetch")
            )
            try:
                await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.exception(
                    "Publish %s of %s failed at batch %d", step, publishable_type, batch_index,
                )
                raise PublishBatchError(publishable_type, batch_index, applied, step) from e
            applied += len(batch)


publish_service = PublishService()
