"""
Dual-state entity store.

Every publishable entity exists as a draft row (``is_published = false``) and,
once published, a published row with the same id. Repositories here read both
sides and perform the draft-side lifecycle: create, update, soft delete,
restore. Published rows are only written by the publish service.
"""
import copy
import logging
from collections import defaultdict
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, delete, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from models.asset import Asset, AssetFolder
from models.base import DualStateMixin, RowLifecycle
from models.collection import Collection, CollectionField, CollectionItem
from models.component import Component
from models.font import Font
from models.layer_style import LayerStyle
from models.locale import Locale
from models.page import Page, PageFolder, PageLayers
from services.content_hash import compute_entity_hash
from services.exceptions import EntityNotFoundError, InvalidStateError
from services.layer_tree import iter_layers, normalize_layers
from services.requirements import STYLE_OVERRIDES_KEY, STYLE_REF_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DualStateMixin)

# Columns managed by the store itself; never accepted from callers
BOOKKEEPING_COLUMNS = frozenset({
    "id",
    "is_published",
    "content_hash",
    "created_at",
    "updated_at",
    "deleted_at",
})


class PublishableType(StrEnum):
    """Entity types that have draft and published rows."""

    PAGE_FOLDERS = "page_folders"
    PAGES = "pages"
    PAGE_LAYERS = "page_layers"
    COMPONENTS = "components"
    LAYER_STYLES = "layer_styles"
    FONTS = "fonts"
    LOCALES = "locales"
    ASSET_FOLDERS = "asset_folders"
    ASSETS = "assets"
    COLLECTIONS = "collections"
    COLLECTION_FIELDS = "collection_fields"
    COLLECTION_ITEMS = "collection_items"


class DualStateRepository(Generic[T]):
    """
    Draft/published access for one entity type.

    Subclasses define:
    - model: The SQLAlchemy model class (must use DualStateMixin)
    - publishable_type: The PublishableType it serves
    - entity_name: Human-readable name for error messages
    """

    model: ClassVar[type[DualStateMixin]]
    publishable_type: ClassVar[PublishableType]
    entity_name: ClassVar[str]

    @classmethod
    def editable_fields(cls) -> list[str]:
        """Attribute names callers may set on a draft."""
        return [
            name for name in inspect(cls.model).column_attrs.keys()
            if name not in BOOKKEEPING_COLUMNS
        ]

    def _select(self, is_published: bool, include_deleted: bool) -> Select:
        # Publish writes rows with bulk statements; refresh identity-mapped rows on read
        query = (
            select(self.model)
            .where(self.model.is_published.is_(is_published))
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            query = query.where(self.model.deleted_at.is_(None))
        return query

    async def get_draft_by_id(
        self,
        db: AsyncSession,
        entity_id: UUID,
        include_deleted: bool = False,
    ) -> T | None:
        """
        Get the draft row for an entity.

        Args:
            db: Database session.
            entity_id: Logical id of the entity.
            include_deleted: If True, return soft-deleted drafts too. Default False.

        Returns:
            The draft row, or None if not found.
        """
        query = self._select(False, include_deleted).where(self.model.id == entity_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_published_by_id(
        self,
        db: AsyncSession,
        entity_id: UUID,
        include_deleted: bool = False,
    ) -> T | None:
        """Get the published row for an entity, or None if it was never published."""
        query = self._select(True, include_deleted).where(self.model.id == entity_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_drafts(self, db: AsyncSession, include_deleted: bool = False) -> list[T]:
        """List draft rows ordered by creation."""
        query = self._select(False, include_deleted).order_by(
            self.model.created_at, self.model.id,
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_published(self, db: AsyncSession, include_deleted: bool = False) -> list[T]:
        """List published rows ordered by creation."""
        query = self._select(True, include_deleted).order_by(
            self.model.created_at, self.model.id,
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    def _check_fields(self, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(self.editable_fields())
        if unknown:
            raise ValueError(
                f"Unknown {self.entity_name} fields: {', '.join(sorted(unknown))}",
            )

    def _prepare_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Hook for entity-specific normalization of incoming field values."""
        return fields

    async def create_draft(self, db: AsyncSession, **fields: Any) -> T:
        """
        Create a new draft row and compute its content hash.

        Args:
            db: Database session.
            **fields: Column values; ``id`` may be supplied to fix the logical id.

        Returns:
            The flushed draft row.

        Raises:
            ValueError: If a field is not an editable column.
        """
        entity_id = fields.pop("id", None)
        self._check_fields(fields)
        fields = self._prepare_fields(fields)
        row = self.model(**fields, is_published=False)
        if entity_id is not None:
            row.id = entity_id
        db.add(row)
        # Flush and refresh first so column defaults are populated before hashing
        await db.flush()
        await db.refresh(row)
        row.content_hash = compute_entity_hash(row)
        await db.flush()
        return row

    async def update_draft(self, db: AsyncSession, entity_id: UUID, **fields: Any) -> T:
        """
        Update fields of an active draft and recompute its content hash.

        Raises:
            EntityNotFoundError: If no active draft exists.
            ValueError: If a field is not an editable column.
        """
        self._check_fields(fields)
        row = await self.get_draft_by_id(db, entity_id)
        if row is None:
            raise EntityNotFoundError(self.publishable_type, entity_id)
        fields = self._prepare_fields(fields)
        for name, value in fields.items():
            setattr(row, name, value)
        row.content_hash = compute_entity_hash(row)
        row.updated_at = datetime.now(UTC)
        await db.flush()
        return row

    async def soft_delete_draft(self, db: AsyncSession, entity_id: UUID) -> T:
        """
        Soft delete a draft. The published row stays live until the next publish.

        Dependent drafts (see ``_cascade_deleted_at``) are soft deleted with the
        same timestamp, so publish never purges a parent under active children.

        Raises:
            EntityNotFoundError: If the draft does not exist.
            InvalidStateError: If the draft is already deleted.
        """
        row = await self.get_draft_by_id(db, entity_id, include_deleted=True)
        if row is None:
            raise EntityNotFoundError(self.publishable_type, entity_id)
        if row.lifecycle is RowLifecycle.SOFT_DELETED:
            raise InvalidStateError(f"{self.entity_name} is already deleted")
        deleted_at = datetime.now(UTC)
        row.deleted_at = deleted_at
        await db.flush()
        await self._cascade_deleted_at(db, entity_id, None, deleted_at)
        return row

    async def restore_draft(self, db: AsyncSession, entity_id: UUID) -> T:
        """
        Restore a soft-deleted draft to active state.

        Dependents deleted together with it are restored too. Dependents that
        were deleted on their own earlier stay deleted.

        Raises:
            EntityNotFoundError: If the draft does not exist.
            InvalidStateError: If the draft is not deleted.
        """
        row = await self.get_draft_by_id(db, entity_id, include_deleted=True)
        if row is None:
            raise EntityNotFoundError(self.publishable_type, entity_id)
        if row.lifecycle is not RowLifecycle.SOFT_DELETED:
            raise InvalidStateError(f"{self.entity_name} is not deleted")
        deleted_at = row.deleted_at
        row.deleted_at = None
        row.updated_at = datetime.now(UTC)
        await db.flush()
        await self._cascade_deleted_at(db, entity_id, deleted_at, None)
        return row

    async def _cascade_deleted_at(
        self,
        db: AsyncSession,
        entity_id: UUID,
        current: datetime | None,
        new: datetime | None,
    ) -> None:
        """
        Move dependent drafts of ``entity_id`` from ``current`` to ``new`` deleted_at.

        No-op by default. Types whose rows own children through a cascading
        foreign key override this.
        """

    async def hard_delete_draft(self, db: AsyncSession, entity_id: UUID) -> bool:
        """Permanently delete a draft row. Returns False if it did not exist."""
        result = await db.execute(
            delete(self.model).where(
                self.model.id == entity_id,
                self.model.is_published.is_(False),
            ),
        )
        return result.rowcount > 0

    async def find_draft_lifecycles(
        self,
        db: AsyncSession,
        entity_ids: list[str],
    ) -> dict[str, RowLifecycle]:
        """
        Resolve the draft lifecycle of each id.

        Ids that are not valid UUIDs or have no draft row are HARD_DELETED.
        """
        lifecycles = {entity_id: RowLifecycle.HARD_DELETED for entity_id in entity_ids}
        parsed: dict[UUID, str] = {}
        for entity_id in entity_ids:
            try:
                parsed[UUID(str(entity_id))] = entity_id
            except ValueError:
                continue
        if not parsed:
            return lifecycles

        result = await db.execute(
            select(self.model.id, self.model.deleted_at).where(
                self.model.id.in_(list(parsed)),
                self.model.is_published.is_(False),
            ),
        )
        for row_id, deleted_at in result.all():
            lifecycles[parsed[row_id]] = (
                RowLifecycle.ACTIVE if deleted_at is None else RowLifecycle.SOFT_DELETED
            )
        return lifecycles


async def _move_drafts_deleted_at(
    db: AsyncSession,
    model: type[DualStateMixin],
    condition: ColumnElement[bool],
    current: datetime | None,
    new: datetime | None,
) -> int:
    """Set deleted_at to ``new`` on drafts matching ``condition`` whose deleted_at is ``current``."""
    state = model.deleted_at.is_(None) if current is None else model.deleted_at == current
    result = await db.execute(
        update(model)
        .where(model.is_published.is_(False), state, condition)
        .values(deleted_at=new, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session="fetch"),
    )
    return result.rowcount


async def _folder_subtree_ids(
    db: AsyncSession,
    model: type[DualStateMixin],
    parent_attr: str,
    root_id: UUID,
) -> list[UUID]:
    """Ids of the draft folder ``root_id`` and every folder nested below it."""
    parent_column = getattr(model, parent_attr)
    result = await db.execute(
        select(model.id, parent_column).where(model.is_published.is_(False)),
    )
    children: dict[UUID | None, list[UUID]] = defaultdict(list)
    for folder_id, parent_id in result.all():
        children[parent_id].append(folder_id)

    subtree: list[UUID] = []
    pending = [root_id]
    while pending:
        folder_id = pending.pop()
        if folder_id in subtree:
            continue
        subtree.append(folder_id)
        pending.extend(children.get(folder_id, []))
    return subtree


async def _page_ids_in(
    db: AsyncSession,
    condition: ColumnElement[bool],
    current: datetime | None,
) -> list[UUID]:
    state = Page.deleted_at.is_(None) if current is None else Page.deleted_at == current
    result = await db.execute(
        select(Page.id).where(Page.is_published.is_(False), state, condition),
    )
    return list(result.scalars().all())


def _normalize_layer_fields(fields: dict[str, Any]) -> dict[str, Any]:
    # UI-only annotations are never persisted on layer trees
    if "layers" in fields:
        fields = {**fields, "layers": normalize_layers(fields["layers"])}
    return fields


class PageFolderRepository(DualStateRepository[PageFolder]):
    model = PageFolder
    publishable_type = PublishableType.PAGE_FOLDERS
    entity_name = "Page folder"

    async def _cascade_deleted_at(
        self,
        db: AsyncSession,
        entity_id: UUID,
        current: datetime | None,
        new: datetime | None,
    ) -> None:
        # Nested folders, the pages inside any of them, and those pages' layer trees
        folder_ids = await _folder_subtree_ids(db, PageFolder, "page_folder_id", entity_id)
        page_ids = await _page_ids_in(db, Page.page_folder_id.in_(folder_ids), current)
        layers = 0
        if page_ids:
            layers = await _move_drafts_deleted_at(
                db, PageLayers, PageLayers.page_id.in_(page_ids), current, new,
            )
            await _move_drafts_deleted_at(db, Page, Page.id.in_(page_ids), current, new)
        folders = await _move_drafts_deleted_at(
            db, PageFolder, PageFolder.id.in_(folder_ids[1:]), current, new,
        )
        logger.info(
            "%s page folder %s with %d nested folders, %d pages, %d layer trees",
            "Deleted" if new is not None else "Restored",
            entity_id,
            folders,
            len(page_ids),
            layers,
        )


class PageRepository(DualStateRepository[Page]):
    model = Page
    publishable_type = PublishableType.PAGES
    entity_name = "Page"

    async def _cascade_deleted_at(
        self,
        db: AsyncSession,
        entity_id: UUID,
        current: datetime | None,
        new: datetime | None,
    ) -> None:
        await _move_drafts_deleted_at(
            db, PageLayers, PageLayers.page_id == entity_id, current, new,
        )


class PageLayersRepository(DualStateRepository[PageLayers]):
    model = PageLayers
    publishable_type = PublishableType.PAGE_LAYERS
    entity_name = "Page layers"

    def _prepare_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        return _normalize_layer_fields(fields)

    async def get_draft_by_page_id(
        self,
        db: AsyncSession,
        page_id: UUID,
        include_deleted: bool = False,
    ) -> PageLayers | None:
        """Get the draft layer tree of a page."""
        query = self._select(False, include_deleted).where(PageLayers.page_id == page_id)
        result = await db.execute(query)
        return result.scalars().first()


class ComponentRepository(DualStateRepository[Component]):
    model = Component
    publishable_type = PublishableType.COMPONENTS
    entity_name = "Component"

    def _prepare_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        return _normalize_layer_fields(fields)


class LayerStyleRepository(DualStateRepository[LayerStyle]):
    model = LayerStyle
    publishable_type = PublishableType.LAYER_STYLES
    entity_name = "Layer style"

    async def soft_delete_draft(self, db: AsyncSession, entity_id: UUID) -> LayerStyle:
        """
        Soft delete a layer style and detach it from every draft layer tree.

        Layers that referenced the style keep their own classes; only the
        ``styleId`` link and its ``styleOverrides`` are removed. Restoring the
        style does not reattach it.
        """
        row = await super().soft_delete_draft(db, entity_id)
        detached = 0
        for tree_model in (PageLayers, Component):
            result = await db.execute(
                select(tree_model).where(
                    tree_model.is_published.is_(False),
                    tree_model.deleted_at.is_(None),
                ),
            )
            for tree_row in result.scalars().all():
                layers = copy.deepcopy(tree_row.layers)
                if _detach_style(layers, str(entity_id)):
                    tree_row.layers = layers
                    tree_row.content_hash = compute_entity_hash(tree_row)
                    tree_row.updated_at = datetime.now(UTC)
                    detached += 1
        if detached:
            logger.info("Detached layer style %s from %d layer trees", entity_id, detached)
            await db.flush()
        return row


def _detach_style(layers: list, style_id: str) -> bool:
    changed = False
    for layer in iter_layers(layers):
        if str(layer.get(STYLE_REF_KEY)) == style_id:
            del layer[STYLE_REF_KEY]
            # Overrides only make sense relative to the attached style
            layer.pop(STYLE_OVERRIDES_KEY, None)
            changed = True
    return changed


class FontRepository(DualStateRepository[Font]):
    model = Font
    publishable_type = PublishableType.FONTS
    entity_name = "Font"


class LocaleRepository(DualStateRepository[Locale]):
    model = Locale
    publishable_type = PublishableType.LOCALES
    entity_name = "Locale"


class AssetFolderRepository(DualStateRepository[AssetFolder]):
    model = AssetFolder
    publishable_type = PublishableType.ASSET_FOLDERS
    entity_name = "Asset folder"

    async def _cascade_deleted_at(
        self,
        db: AsyncSession,
        entity_id: UUID,
        current: datetime | None,
        new: datetime | None,
    ) -> None:
        folder_ids = await _folder_subtree_ids(db, AssetFolder, "asset_folder_id", entity_id)
        assets = await _move_drafts_deleted_at(
            db, Asset, Asset.asset_folder_id.in_(folder_ids), current, new,
        )
        folders = await _move_drafts_deleted_at(
            db, AssetFolder, AssetFolder.id.in_(folder_ids[1:]), current, new,
        )
        logger.info(
            "%s asset folder %s with %d nested folders, %d assets",
            "Deleted" if new is not None else "Restored",
            entity_id,
            folders,
            assets,
        )


class AssetRepository(DualStateRepository[Asset]):
    model = Asset
    publishable_type = PublishableType.ASSETS
    entity_name = "Asset"


class CollectionRepository(DualStateRepository[Collection]):
    model = Collection
    publishable_type = PublishableType.COLLECTIONS
    entity_name = "Collection"

    async def _cascade_deleted_at(
        self,
        db: AsyncSession,
        entity_id: UUID,
        current: datetime | None,
        new: datetime | None,
    ) -> None:
        for child_model in (CollectionField, CollectionItem):
            await _move_drafts_deleted_at(
                db, child_model, child_model.collection_id == entity_id, current, new,
            )


class CollectionFieldRepository(DualStateRepository[CollectionField]):
    model = CollectionField
    publishable_type = PublishableType.COLLECTION_FIELDS
    entity_name = "Collection field"


class CollectionItemRepository(DualStateRepository[CollectionItem]):
    model = CollectionItem
    publishable_type = PublishableType.COLLECTION_ITEMS
    entity_name = "Collection item"


page_folder_repository = PageFolderRepository()
page_repository = PageRepository()
page_layers_repository = PageLayersRepository()
component_repository = ComponentRepository()
layer_style_repository = LayerStyleRepository()

REPOSITORIES: dict[PublishableType, DualStateRepository] = {
    PublishableType.PAGE_FOLDERS: page_folder_repository,
    PublishableType.PAGES: page_repository,
    PublishableType.PAGE_LAYERS: page_layers_repository,
    PublishableType.COMPONENTS: component_repository,
    PublishableType.LAYER_STYLES: layer_style_repository,
    PublishableType.FONTS: FontRepository(),
    PublishableType.LOCALES: LocaleRepository(),
    PublishableType.ASSET_FOLDERS: AssetFolderRepository(),
    PublishableType.ASSETS: AssetRepository(),
    PublishableType.COLLECTIONS: CollectionRepository(),
    PublishableType.COLLECTION_FIELDS: CollectionFieldRepository(),
    PublishableType.COLLECTION_ITEMS: CollectionItemRepository(),
}


def get_repository(publishable_type: PublishableType) -> DualStateRepository:
    """Get the repository serving a publishable type."""
    return REPOSITORIES[publishable_type]
