"""Shared exceptions for service layer operations."""
from uuid import UUID


class InvalidStateError(Exception):
    """
    Raised when an operation is invalid for an entity's current state.

    Used by the entity store when lifecycle operations cannot be performed
    (e.g., restoring a draft that is not deleted, deleting one twice).
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class EntityNotFoundError(Exception):
    """Raised when a draft or published row does not exist (or is soft-deleted)."""

    def __init__(self, entity_type: str, entity_id: UUID, is_published: bool = False) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.is_published = is_published
        side = "published" if is_published else "draft"
        super().__init__(f"{entity_type} {side} not found: {entity_id}")


class PatchApplicationError(Exception):
    """Raised when a patch operation cannot be applied to a document."""

    def __init__(self, operation: dict, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Cannot apply {operation.get('op')} at '{operation.get('path')}': {reason}",
        )


class UndoRedoError(Exception):
    """
    Base exception for refused undo/redo operations.

    Carries the entity and version so callers can retry or show a message.
    """

    error_code = "undo_redo_failed"

    def __init__(
        self,
        message: str,
        entity_type: str,
        entity_id: UUID,
        version_id: UUID | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.version_id = version_id
        super().__init__(message)

    def context(self) -> dict:
        """Structured context for API error responses."""
        return {
            "entity_type": str(self.entity_type),
            "entity_id": str(self.entity_id),
            "version_id": str(self.version_id) if self.version_id else None,
        }


class NothingToUndoError(UndoRedoError):
    """Raised when the session's undo stack for an entity is empty."""

    error_code = "nothing_to_undo"

    def __init__(self, entity_type: str, entity_id: UUID) -> None:
        super().__init__(f"Nothing to undo for {entity_type} {entity_id}", entity_type, entity_id)


class NothingToRedoError(UndoRedoError):
    """Raised when the session's redo stack for an entity is empty."""

    error_code = "nothing_to_redo"

    def __init__(self, entity_type: str, entity_id: UUID) -> None:
        super().__init__(f"Nothing to redo for {entity_type} {entity_id}", entity_type, entity_id)


class MissingRequirementError(UndoRedoError):
    """Raised when a version needs components or layer styles that no longer resolve."""

    error_code = "missing_requirement"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID,
        version_id: UUID,
        component_ids: list[str],
        layer_style_ids: list[str],
    ) -> None:
        self.component_ids = component_ids
        self.layer_style_ids = layer_style_ids
        missing = [f"component {i}" for i in component_ids]
        missing += [f"layer style {i}" for i in layer_style_ids]
        super().__init__(
            f"Version {version_id} requires missing entities: {', '.join(missing)}",
            entity_type,
            entity_id,
            version_id,
        )

    def context(self) -> dict:
        """Structured context including the unresolved ids."""
        return {
            **super().context(),
            "component_ids": self.component_ids,
            "layer_style_ids": self.layer_style_ids,
        }


class HashMismatchError(UndoRedoError):
    """Raised when the current draft is not the state a version expects to replay against."""

    error_code = "hash_mismatch"

    def __init__(
        self,
        entity_type: str,
        entity_id: UUID,
        version_id: UUID,
        expected: str | None,
        actual: str,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Draft of {entity_type} {entity_id} does not match version {version_id} "
            f"(expected hash {expected}, found {actual})",
            entity_type,
            entity_id,
            version_id,
        )

    def context(self) -> dict:
        """Structured context including both hashes."""
        return {**super().context(), "expected_hash": self.expected, "actual_hash": self.actual}


class PatchReplayError(UndoRedoError):
    """Raised when a version's patch cannot be applied to the current draft."""

    error_code = "patch_replay_failed"


class PublishBatchError(Exception):
    """
    Raised when a publish write batch fails.

    Batches before ``batch_index`` are already committed; publishing again
    resumes from the remaining differences.
    """

    def __init__(self, publishable_type: str, batch_index: int, applied: int, step: str) -> None:
        self.publishable_type = publishable_type
        self.batch_index = batch_index
        self.applied = applied
        self.step = step
        super().__init__(
            f"Publishing {publishable_type} failed at {step} (batch {batch_index}, "
            f"{applied} rows already applied)",
        )
