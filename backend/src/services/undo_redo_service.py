"""
Undo/redo of recorded versions.

Each editing session has, per entity, a cursor into that entity's version
sequence: an undo stack of versions applied to the current draft and a redo
stack of versions that were undone. Undo applies a version's ``undo`` patch to
the draft, redo applies its ``redo`` patch.

Before a patch is applied the replay is checked:

- hash check: the draft must be exactly the state the patch was recorded
  against (``current_hash`` for undo, ``previous_hash`` for redo)
- requirement check: components and layer styles the resulting tree references
  and the version lists as requirements must still resolve

The draft write that results is marked so the version recorder refreshes its
baseline instead of recording the undo/redo as a new change.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import RequirementPolicy
from models.base import RowLifecycle
from models.version import Version, VersionEntityType
from services.entity_handlers import get_entity_handler
from services.entity_store import component_repository, layer_style_repository
from services.exceptions import (
    EntityNotFoundError,
    HashMismatchError,
    MissingRequirementError,
    NothingToRedoError,
    NothingToUndoError,
    PatchApplicationError,
    PatchReplayError,
)
from services.patch_engine import apply_patch
from services.requirements import Requirements, collect_references
from services.version_recorder import SELECTION_METADATA_KEY, VersionRecorder
from services.version_service import VersionService, version_service

logger = logging.getLogger(__name__)

Direction = Literal["undo", "redo"]


@dataclass
class UndoRedoCursor:
    """Version ids on either side of the current draft, most recent last."""

    undo_stack: list[UUID] = field(default_factory=list)
    redo_stack: list[UUID] = field(default_factory=list)


@dataclass
class UndoRedoResult:
    """Outcome of an undo or redo."""

    version: Version
    state: Any
    content_hash: str | None
    can_undo: bool
    can_redo: bool
    selection: list[str] = field(default_factory=list)
    restored: Requirements = field(default_factory=Requirements)


class UndoRedoService:
    """Session-scoped undo/redo over recorded versions."""

    def __init__(
        self,
        recorder: VersionRecorder,
        versions: VersionService = version_service,
        verify_hashes: bool = True,
        requirement_policy: RequirementPolicy = RequirementPolicy.STRICT,
        restore_soft_deleted: bool = True,
        history_load_limit: int = 100,
    ) -> None:
        self.recorder = recorder
        self.versions = versions
        self.verify_hashes = verify_hashes
        self.requirement_policy = requirement_policy
        self.restore_soft_deleted = restore_soft_deleted
        self.history_load_limit = history_load_limit
        self._cursors: dict[tuple[str, str, UUID], UndoRedoCursor] = {}

    @staticmethod
    def _key(session_id: str, entity_type: str, entity_id: UUID) -> tuple[str, str, UUID]:
        return (session_id, str(entity_type), entity_id)

    def get_cursor(
        self,
        session_id: str,
        entity_type: VersionEntityType,
        entity_id: UUID,
    ) -> UndoRedoCursor | None:
        """Get the session's cursor for an entity, if history was loaded or recorded."""
        return self._cursors.get(self._key(session_id, entity_type, entity_id))

    def can_undo(self, session_id: str, entity_type: VersionEntityType, entity_id: UUID) -> bool:
        """Whether the session has a version to undo for the entity."""
        cursor = self.get_cursor(session_id, entity_type, entity_id)
        return bool(cursor and cursor.undo_stack)

    def can_redo(self, session_id: str, entity_type: VersionEntityType, entity_id: UUID) -> bool:
        """Whether the session has a version to redo for the entity."""
        cursor = self.get_cursor(session_id, entity_type, entity_id)
        return bool(cursor and cursor.redo_stack)

    def end_session(self, session_id: str) -> None:
        """Drop every cursor belonging to a session."""
        for key in [key for key in self._cursors if key[0] == session_id]:
            del self._cursors[key]

    async def load_history(
        self,
        db: AsyncSession,
        session_id: str,
        entity_type: VersionEntityType,
        entity_id: UUID,
    ) -> UndoRedoCursor:
        """
        Build the session's cursor from stored versions.

        The cursor is positioned by matching the current draft's hash against
        the versions, newest first: matching a version's ``current_hash`` puts
        the draft after that version, matching its ``previous_hash`` puts it
        before. With no match the draft is assumed to be at the latest version.

        Also seeds the recorder's baseline so the session's first edit is
        recorded.
        """
        entity_type = VersionEntityType(entity_type)
        handler = get_entity_handler(entity_type)
        versions = await self.versions.list_versions_ascending(
            db, entity_type, entity_id, limit=self.history_load_limit,
        )
        state = await handler.load_state(db, entity_id)

        position = len(versions)
        if state is not None:
            self.recorder.observe(entity_type, entity_id, state)
            current_hash = handler.hash_state(state)
            for index in range(len(versions) - 1, -1, -1):
                if versions[index].current_hash == current_hash:
                    position = index + 1
                    break
                if versions[index].previous_hash == current_hash:
                    position = index
                    break

        ids = [version.id for version in versions]
        cursor = UndoRedoCursor(
            undo_stack=ids[:position],
            redo_stack=list(reversed(ids[position:])),
        )
        self._cursors[self._key(session_id, entity_type, entity_id)] = cursor
        return cursor

    def record_pushed(
        self,
        session_id: str | None,
        entity_type: VersionEntityType,
        entity_id: UUID,
        version_id: UUID,
    ) -> None:
        """
        Push a newly recorded version onto every cursor held for the entity.

        A new change discards redo stacks. The recording session gets a cursor
        if it has none yet; a version recorded without a session only reaches
        sessions already editing the entity.
        """
        if session_id is not None:
            key = self._key(session_id, entity_type, entity_id)
            self._cursors.setdefault(key, UndoRedoCursor())
        for (_, cursor_type, cursor_id), cursor in self._cursors.items():
            if cursor_type != str(entity_type) or cursor_id != entity_id:
                continue
            cursor.undo_stack.append(version_id)
            cursor.redo_stack.clear()
            if len(cursor.undo_stack) > self.history_load_limit:
                del cursor.undo_stack[: len(cursor.undo_stack) - self.history_load_limit]

    async def undo(
        self,
        db: AsyncSession,
        session_id: str,
        entity_type: VersionEntityType,
        entity_id: UUID,
    ) -> UndoRedoResult:
        """
        Revert the most recent applied version of an entity.

        Raises:
            NothingToUndoError: If there is nothing to undo.
            HashMismatchError: If the draft is not the version's resulting state.
            MissingRequirementError: If the reverted tree would reference
                components or layer styles that no longer exist.
            PatchReplayError: If the undo patch does not apply to the draft.
        """
        return await self._replay(db, session_id, VersionEntityType(entity_type), entity_id, "undo")

    async def redo(
        self,
        db: AsyncSession,
        session_id: str,
        entity_type: VersionEntityType,
        entity_id: UUID,
    ) -> UndoRedoResult:
        """Re-apply the most recently undone version of an entity. Raises like undo()."""
        return await self._replay(db, session_id, VersionEntityType(entity_type), entity_id, "redo")

    async def _pop_version(self, db: AsyncSession, stack: list[UUID]) -> Version | None:
        # Versions pruned by retention leave stale ids behind
        while stack:
            version = await self.versions.get_version(db, stack[-1])
            if version is not None:
                return version
            stack.pop()
        return None

    async def _replay(
        self,
        db: AsyncSession,
        session_id: str,
        entity_type: VersionEntityType,
        entity_id: UUID,
        direction: Direction,
    ) -> UndoRedoResult:
        cursor = self.get_cursor(session_id, entity_type, entity_id)
        if cursor is None:
            cursor = await self.load_history(db, session_id, entity_type, entity_id)
        if direction == "undo":
            source, target = cursor.undo_stack, cursor.redo_stack
        else:
            source, target = cursor.redo_stack, cursor.undo_stack

        version = await self._pop_version(db, source)
        if version is None:
            if direction == "undo":
                raise NothingToUndoError(entity_type, entity_id)
            raise NothingToRedoError(entity_type, entity_id)

        handler = get_entity_handler(entity_type)
        current_state = await handler.load_state(db, entity_id)
        if current_state is None:
            raise EntityNotFoundError(entity_type, entity_id)

        expected_hash = version.current_hash if direction == "undo" else version.previous_hash
        if self.verify_hashes and expected_hash is not None:
            actual_hash = handler.hash_state(current_state)
            if actual_hash != expected_hash:
                raise HashMismatchError(entity_type, entity_id, version.id, expected_hash, actual_hash)

        patch = version.undo if direction == "undo" else version.redo
        if patch is None:
            raise PatchReplayError(
                f"Version {version.id} has no {direction} patch", entity_type, entity_id, version.id,
            )
        try:
            new_state = apply_patch(current_state, patch)
        except PatchApplicationError as e:
            raise PatchReplayError(str(e), entity_type, entity_id, version.id) from e

        restored = Requirements()
        if handler.is_tree:
            restored = await self._ensure_requirements(db, entity_type, entity_id, version, new_state)

        # Cleared by the recorder when the write below is recorded; the mark's
        # timer clears it if the write fails
        self.recorder.marks.mark(entity_type, entity_id)
        row = await handler.save_state(db, entity_id, new_state)
        saved_state = handler.extract_state(row)
        await self.recorder.record_version(
            db, entity_type, entity_id, saved_state, session_id=session_id,
        )

        target.append(source.pop())
        logger.info(
            "%s of version %s applied to %s %s",
            direction.capitalize(),
            version.id,
            entity_type,
            entity_id,
        )
        selection = (version.version_metadata or {}).get(SELECTION_METADATA_KEY) or {}
        return UndoRedoResult(
            version=version,
            state=saved_state,
            content_hash=row.content_hash,
            can_undo=bool(cursor.undo_stack),
            can_redo=bool(cursor.redo_stack),
            selection=list(selection.get("layer_ids") or []),
            restored=restored,
        )

    async def _ensure_requirements(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType,
        entity_id: UUID,
        version: Version,
        new_state: Any,
    ) -> Requirements:
        """
        Check that required references in the replayed tree still resolve.

        Only requirements the resulting tree actually references are checked:
        undoing the addition of a component reference does not need the
        component. Soft-deleted requirements are restored when allowed.

        Returns:
            The requirements that were restored from soft delete.

        Raises:
            MissingRequirementError: Under the strict policy, if any required
                entity does not resolve.
        """
        requirements = Requirements.from_metadata(version.version_metadata)
        if requirements.is_empty():
            return Requirements()

        component_refs, style_refs = collect_references(new_state)
        needed_components = [i for i in requirements.component_ids if i in component_refs]
        needed_styles = [i for i in requirements.layer_style_ids if i in style_refs]
        if not needed_components and not needed_styles:
            return Requirements()

        component_lifecycles = await component_repository.find_draft_lifecycles(
            db, needed_components,
        )
        style_lifecycles = await layer_style_repository.find_draft_lifecycles(db, needed_styles)

        resolvable = {RowLifecycle.ACTIVE}
        if self.restore_soft_deleted:
            resolvable.add(RowLifecycle.SOFT_DELETED)
        missing_components = [i for i, s in component_lifecycles.items() if s not in resolvable]
        missing_styles = [i for i, s in style_lifecycles.items() if s not in resolvable]

        if missing_components or missing_styles:
            if self.requirement_policy is RequirementPolicy.STRICT:
                raise MissingRequirementError(
                    entity_type, entity_id, version.id, missing_components, missing_styles,
                )
            logger.warning(
                "Replaying version %s of %s %s with missing components %s and layer styles %s",
                version.id,
                entity_type,
                entity_id,
                missing_components,
                missing_styles,
            )

        restored = Requirements()
        if self.restore_soft_deleted:
            for component_id, lifecycle in component_lifecycles.items():
                if lifecycle is RowLifecycle.SOFT_DELETED:
                    await component_repository.restore_draft(db, UUID(component_id))
                    restored.component_ids.append(component_id)
            for style_id, lifecycle in style_lifecycles.items():
                if lifecycle is RowLifecycle.SOFT_DELETED:
                    await layer_style_repository.restore_draft(db, UUID(style_id))
                    restored.layer_style_ids.append(style_id)
        if not restored.is_empty():
            logger.info(
                "Restored requirements for version %s: %s", version.id, restored.to_metadata(),
            )
        return restored
