"""
Version recorder: turns successive draft states into version records.

Every draft save passes the entity's new state through ``record_version``. The
recorder diffs it against the last state it saw for that entity, and when the
change is real, persists a version holding the forward (redo) and inverse
(undo) patches.

Recording is a secondary audit trail. A failure to persist a version is logged
and swallowed; it never rolls back the draft save that triggered it.
"""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.state_cache import PreviousStateCache, UndoRedoMarks
from models.version import ActionType, Version, VersionEntityType
from schemas.version import VersionCreate
from services.entity_handlers import get_entity_handler
from services.layer_tree import affected_layer_ids
from services.patch_engine import (
    create_inverse_patch,
    create_patch,
    describe_patch,
    does_patch_change_state,
    is_patch_empty,
)
from services.requirements import (
    REQUIREMENTS_METADATA_KEY,
    extract_requirements,
    merge_requirements,
)
from services.version_service import VersionService, version_service

logger = logging.getLogger(__name__)

SELECTION_METADATA_KEY = "selection"


class VersionRecorder:
    """
    Records versions for draft state changes.

    The previous-state cache and undo/redo marks are injected so each test (or
    process) owns its own instances. Cache lifecycle per entity:

    - seeded on first observation (no version is recorded)
    - replaced after every recorded version
    - replaced after every undo/redo write (no version is recorded)
    """

    def __init__(
        self,
        cache: PreviousStateCache,
        marks: UndoRedoMarks,
        versions: VersionService = version_service,
    ) -> None:
        self.cache = cache
        self.marks = marks
        self.versions = versions

    def observe(self, entity_type: VersionEntityType, entity_id: UUID, state: Any) -> bool:
        """
        Seed the baseline for an entity that has none (e.g. when the editor loads it).

        Returns:
            True if the state became the baseline.
        """
        if self.cache.has(entity_type, entity_id):
            return False
        self.cache.set(entity_type, entity_id, state)
        return True

    async def record_version(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType,
        entity_id: UUID,
        current_state: Any,
        extra_metadata: dict | None = None,
        session_id: str | None = None,
    ) -> Version | None:
        """
        Record the change from the cached previous state to ``current_state``.

        Args:
            db: Database session (the same one that saved the draft).
            entity_type: Versioned entity type.
            entity_id: ID of the entity (page id for page layers).
            current_state: The entity's state as just saved.
            extra_metadata: Caller metadata merged into the record. A
                ``requirements`` entry is merged with extracted requirements.
            session_id: Editing session the change belongs to.

        Returns:
            The stored Version, or None when nothing was recorded (undo/redo
            write, first observation, no-op edit, or storage failure).
        """
        entity_type = VersionEntityType(entity_type)

        if self.marks.is_marked(entity_type, entity_id):
            self.cache.set(entity_type, entity_id, current_state)
            self.marks.clear(entity_type, entity_id)
            logger.debug("Skipped recording undo/redo write of %s %s", entity_type, entity_id)
            return None

        previous_state = self.cache.get(entity_type, entity_id)
        if previous_state is None:
            self.cache.set(entity_type, entity_id, current_state)
            return None

        handler = get_entity_handler(entity_type)
        previous_normalized = handler.normalize(previous_state)
        current_normalized = handler.normalize(current_state)

        redo_patch = create_patch(previous_normalized, current_normalized)
        if is_patch_empty(redo_patch) or not does_patch_change_state(
            previous_normalized, redo_patch,
        ):
            return None

        undo_patch = create_inverse_patch(previous_normalized, redo_patch)

        metadata = dict(extra_metadata or {})
        if handler.is_tree:
            requirements = merge_requirements(
                extract_requirements(previous_normalized, current_normalized),
                metadata.get(REQUIREMENTS_METADATA_KEY),
            )
            if not requirements.is_empty():
                metadata[REQUIREMENTS_METADATA_KEY] = requirements.to_metadata()
            layer_ids = affected_layer_ids(redo_patch, previous_normalized, current_normalized)
            if layer_ids and SELECTION_METADATA_KEY not in metadata:
                metadata[SELECTION_METADATA_KEY] = {"layer_ids": layer_ids}

        data = VersionCreate(
            entity_type=entity_type,
            entity_id=entity_id,
            action_type=ActionType.UPDATE,
            description=describe_patch(redo_patch, previous_normalized),
            redo=redo_patch,
            undo=undo_patch,
            previous_hash=handler.hash_state(previous_state),
            current_hash=handler.hash_state(current_state),
            session_id=session_id,
            metadata=metadata or None,
        )

        try:
            async with db.begin_nested():  # Savepoint: a failure keeps the draft save
                version = await self.versions.create_version(db, data, current_state)
        except SQLAlchemyError:
            logger.exception(
                "Failed to record version for %s %s; undo history will skip this change",
                entity_type,
                entity_id,
            )
            return None

        self.cache.set(entity_type, entity_id, current_state)
        logger.debug(
            "Recorded version %s for %s %s: %s",
            version.id,
            entity_type,
            entity_id,
            data.description,
        )
        return version
