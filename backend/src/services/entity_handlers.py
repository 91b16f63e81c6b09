"""
Per-entity-type access to versioned draft state.

Version recording and undo/redo work on an entity's *state*: the part of its
draft that changes are recorded against. Each VersionEntityType has exactly one
handler describing how to load, save, and hash that state:

- page_layers: the page's layer tree (``page_layers.layers``), keyed by page id
- component: the component's layer tree (``components.layers``)
- layer_style: ``{"classes": ..., "design": ...}`` of a shared style
"""
from abc import ABC, abstractmethod
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from models.version import VersionEntityType
from services.content_hash import hash_content
from services.entity_store import (
    PublishableType,
    component_repository,
    layer_style_repository,
    page_layers_repository,
    page_repository,
)
from services.exceptions import EntityNotFoundError
from services.layer_tree import normalize_layers


class EntityStateHandler(ABC):
    """Load/save/hash operations for one versioned entity type."""

    entity_type: VersionEntityType

    @property
    def is_tree(self) -> bool:
        """Whether the state is a layer tree (normalized before diffing)."""
        return self.entity_type.is_tree

    def normalize(self, state: Any) -> Any:
        """Strip UI-only content from a state before diffing."""
        if self.is_tree:
            return normalize_layers(state)
        return state

    def hash_state(self, state: Any) -> str:
        """Content hash of a (non-normalized) state."""
        return hash_content(state)

    @abstractmethod
    def extract_state(self, row: Any) -> Any:
        """Read the state out of a draft row."""

    @abstractmethod
    async def load_state(self, db: AsyncSession, entity_id: UUID) -> Any | None:
        """Return the active draft's state, or None if there is no active draft."""

    @abstractmethod
    async def save_state(self, db: AsyncSession, entity_id: UUID, state: Any) -> Any:
        """
        Persist a new state onto the draft and recompute its content hash.

        Layer trees are normalized first: UI-only annotations are never
        persisted, so the stored tree hashes the same as what was diffed.

        Returns:
            The updated draft row.

        Raises:
            EntityNotFoundError: If the draft does not exist.
            ValueError: If the state does not have the type's shape.
        """


class PageLayersHandler(EntityStateHandler):
    """Layer tree of a page. The version entity id is the page id."""

    entity_type = VersionEntityType.PAGE_LAYERS

    def extract_state(self, row: Any) -> list:
        return row.layers

    async def load_state(self, db: AsyncSession, entity_id: UUID) -> list | None:
        row = await page_layers_repository.get_draft_by_page_id(db, entity_id)
        return None if row is None else self.extract_state(row)

    async def save_state(self, db: AsyncSession, entity_id: UUID, state: Any) -> Any:
        layers = self.normalize(state)
        row = await page_layers_repository.get_draft_by_page_id(db, entity_id)
        if row is not None:
            return await page_layers_repository.update_draft(db, row.id, layers=layers)
        # First save of a page's tree creates its layers row
        page = await page_repository.get_draft_by_id(db, entity_id)
        if page is None:
            raise EntityNotFoundError(self.entity_type, entity_id)
        return await page_layers_repository.create_draft(db, page_id=entity_id, layers=layers)


class ComponentHandler(EntityStateHandler):
    """Layer tree of a reusable component."""

    entity_type = VersionEntityType.COMPONENT

    def extract_state(self, row: Any) -> list:
        return row.layers

    async def load_state(self, db: AsyncSession, entity_id: UUID) -> list | None:
        row = await component_repository.get_draft_by_id(db, entity_id)
        return None if row is None else self.extract_state(row)

    async def save_state(self, db: AsyncSession, entity_id: UUID, state: Any) -> Any:
        if await component_repository.get_draft_by_id(db, entity_id) is None:
            raise EntityNotFoundError(self.entity_type, entity_id)
        return await component_repository.update_draft(
            db, entity_id, layers=self.normalize(state),
        )


class LayerStyleHandler(EntityStateHandler):
    """Classes and design values of a shared layer style."""

    entity_type = VersionEntityType.LAYER_STYLE

    def extract_state(self, row: Any) -> dict:
        return {"classes": row.classes, "design": row.design}

    async def load_state(self, db: AsyncSession, entity_id: UUID) -> dict | None:
        row = await layer_style_repository.get_draft_by_id(db, entity_id)
        return None if row is None else self.extract_state(row)

    async def save_state(self, db: AsyncSession, entity_id: UUID, state: Any) -> Any:
        if state is None:
            state = {}
        if not isinstance(state, dict):
            raise ValueError(f"Layer style state must be an object, got {type(state).__name__}")
        design = state.get("design")
        if design is not None and not isinstance(design, dict):
            raise ValueError("Layer style design must be an object")
        if await layer_style_repository.get_draft_by_id(db, entity_id) is None:
            raise EntityNotFoundError(self.entity_type, entity_id)
        return await layer_style_repository.update_draft(
            db,
            entity_id,
            classes=state.get("classes") or "",
            design=design,
        )


_page_layers_handler = PageLayersHandler()
_component_handler = ComponentHandler()
_layer_style_handler = LayerStyleHandler()


def get_entity_handler(entity_type: VersionEntityType) -> EntityStateHandler:
    """Get the state handler for a versioned entity type."""
    match entity_type:
        case VersionEntityType.PAGE_LAYERS:
            return _page_layers_handler
        case VersionEntityType.COMPONENT:
            return _component_handler
        case VersionEntityType.LAYER_STYLE:
            return _layer_style_handler
        case _:
            assert_never(entity_type)


# Publishable types whose draft rows carry versioned state
_VERSIONED_TYPES: dict[PublishableType, VersionEntityType] = {
    PublishableType.PAGE_LAYERS: VersionEntityType.PAGE_LAYERS,
    PublishableType.COMPONENTS: VersionEntityType.COMPONENT,
    PublishableType.LAYER_STYLES: VersionEntityType.LAYER_STYLE,
}


def version_key_for_row(
    publishable_type: PublishableType,
    row: Any,
) -> tuple[VersionEntityType, UUID] | None:
    """
    Map a draft row to the (entity type, entity id) its versions are recorded under.

    Returns:
        None for entity types without version history.
    """
    entity_type = _VERSIONED_TYPES.get(PublishableType(publishable_type))
    if entity_type is None:
        return None
    if entity_type is VersionEntityType.PAGE_LAYERS:
        return entity_type, row.page_id
    return entity_type, row.id
