"""FastAPI dependencies for injection."""
from functools import lru_cache

from core.config import get_settings
from core.state_cache import PreviousStateCache, UndoRedoMarks
from db.session import get_async_session
from services.publish_service import PublishService
from services.undo_redo_service import UndoRedoService
from services.version_recorder import VersionRecorder
from services.version_service import VersionService


@lru_cache
def get_state_cache() -> PreviousStateCache:
    """Process-wide baseline cache for version recording."""
    return PreviousStateCache(max_entries=get_settings().state_cache_max_entries)


@lru_cache
def get_undo_redo_marks() -> UndoRedoMarks:
    """Process-wide undo/redo write marks."""
    return UndoRedoMarks(timeout_seconds=get_settings().undo_redo_mark_timeout_seconds)


@lru_cache
def get_version_service() -> VersionService:
    """Version storage configured with the retention settings."""
    settings = get_settings()
    return VersionService(
        max_versions=settings.max_versions_per_entity,
        snapshot_interval=settings.version_snapshot_interval,
    )


@lru_cache
def get_version_recorder() -> VersionRecorder:
    """Version recorder sharing the process-wide cache and marks."""
    return VersionRecorder(
        cache=get_state_cache(),
        marks=get_undo_redo_marks(),
        versions=get_version_service(),
    )


@lru_cache
def get_undo_redo_service() -> UndoRedoService:
    """Undo/redo service holding the per-session cursors."""
    settings = get_settings()
    return UndoRedoService(
        recorder=get_version_recorder(),
        versions=get_version_service(),
        verify_hashes=settings.verify_version_hashes,
        requirement_policy=settings.requirement_policy,
        restore_soft_deleted=settings.restore_soft_deleted_requirements,
        history_load_limit=settings.history_load_limit,
    )


@lru_cache
def get_publish_service() -> PublishService:
    """Publish service configured with the batch size."""
    return PublishService(batch_size=get_settings().publish_batch_size)


def reset_dependencies() -> None:
    """Drop all process-wide service instances (tests, settings changes)."""
    if get_undo_redo_marks.cache_info().currsize:
        get_undo_redo_marks().clear_all()
    for dependency in (
        get_state_cache,
        get_undo_redo_marks,
        get_version_service,
        get_version_recorder,
        get_undo_redo_service,
        get_publish_service,
    ):
        dependency.cache_clear()


__all__ = [
    "get_async_session",
    "get_publish_service",
    "get_settings",
    "get_state_cache",
    "get_undo_redo_marks",
    "get_undo_redo_service",
    "get_version_recorder",
    "get_version_service",
    "reset_dependencies",
]
