"""Undo/redo endpoints scoped to an editing session."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_undo_redo_service
from models.version import VersionEntityType
from schemas.undo_redo import RestoredRequirements, UndoRedoResponse, UndoRedoStatus
from services.undo_redo_service import UndoRedoResult, UndoRedoService

router = APIRouter(prefix="/undo-redo", tags=["undo-redo"])


def _to_response(
    entity_type: VersionEntityType,
    entity_id: UUID,
    result: UndoRedoResult,
) -> UndoRedoResponse:
    return UndoRedoResponse(
        entity_type=entity_type,
        entity_id=entity_id,
        version_id=result.version.id,
        description=result.version.description,
        state=result.state,
        content_hash=result.content_hash,
        can_undo=result.can_undo,
        can_redo=result.can_redo,
        selection=result.selection,
        restored=RestoredRequirements(
            component_ids=result.restored.component_ids,
            layer_style_ids=result.restored.layer_style_ids,
        ),
    )


@router.post("/{entity_type}/{entity_id}/load", response_model=UndoRedoStatus)
async def load_history(
    entity_type: VersionEntityType,
    entity_id: UUID,
    session_id: str = Query(min_length=1, max_length=100),
    db: AsyncSession = Depends(get_async_session),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> UndoRedoStatus:
    """Position the session's undo/redo cursor for an entity from its stored versions."""
    cursor = await undo_redo.load_history(db, session_id, entity_type, entity_id)
    return UndoRedoStatus(
        entity_type=entity_type,
        entity_id=entity_id,
        session_id=session_id,
        can_undo=bool(cursor.undo_stack),
        can_redo=bool(cursor.redo_stack),
        undo_count=len(cursor.undo_stack),
        redo_count=len(cursor.redo_stack),
    )


@router.post("/{entity_type}/{entity_id}/undo", response_model=UndoRedoResponse)
async def undo(
    entity_type: VersionEntityType,
    entity_id: UUID,
    session_id: str = Query(min_length=1, max_length=100),
    db: AsyncSession = Depends(get_async_session),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> UndoRedoResponse:
    """
    Undo the most recent change to an entity.

    Responds 409 when there is nothing to undo, when the draft changed since
    the version was recorded, or when the reverted tree would reference a
    component or layer style that no longer exists.
    """
    result = await undo_redo.undo(db, session_id, entity_type, entity_id)
    return _to_response(entity_type, entity_id, result)


@router.post("/{entity_type}/{entity_id}/redo", response_model=UndoRedoResponse)
async def redo(
    entity_type: VersionEntityType,
    entity_id: UUID,
    session_id: str = Query(min_length=1, max_length=100),
    db: AsyncSession = Depends(get_async_session),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> UndoRedoResponse:
    """Redo the most recently undone change to an entity. Responds 409 like undo."""
    result = await undo_redo.redo(db, session_id, entity_type, entity_id)
    return _to_response(entity_type, entity_id, result)
