"""Draft state endpoints for versioned entities (page layers, components, layer styles)."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_undo_redo_service, get_version_recorder
from models.version import VersionEntityType
from schemas.draft import DraftResponse, DraftUpdate
from services.entity_handlers import get_entity_handler
from services.exceptions import EntityNotFoundError
from services.undo_redo_service import UndoRedoService
from services.version_recorder import VersionRecorder

router = APIRouter(prefix="/drafts", tags=["drafts"])


@router.get("/{entity_type}/{entity_id}", response_model=DraftResponse)
async def get_draft(
    entity_type: VersionEntityType,
    entity_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    recorder: VersionRecorder = Depends(get_version_recorder),
) -> DraftResponse:
    """
    Get the current draft state of an entity.

    Loading a draft makes it the baseline for version recording if there
    is none yet, so the first edit after loading is recorded.
    """
    handler = get_entity_handler(entity_type)
    state = await handler.load_state(db, entity_id)
    if state is None:
        raise EntityNotFoundError(entity_type, entity_id)
    recorder.observe(entity_type, entity_id, state)
    return DraftResponse(
        entity_type=entity_type,
        entity_id=entity_id,
        state=state,
        content_hash=handler.hash_state(state),
    )


@router.put("/{entity_type}/{entity_id}", response_model=DraftResponse)
async def save_draft(
    entity_type: VersionEntityType,
    entity_id: UUID,
    data: DraftUpdate,
    db: AsyncSession = Depends(get_async_session),
    recorder: VersionRecorder = Depends(get_version_recorder),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> DraftResponse:
    """
    Save a new draft state and record the change as a version.

    No version is recorded for the first save of an entity the server has
    not seen yet, or when the state did not change. A failure to record is
    logged and the save still succeeds.
    """
    handler = get_entity_handler(entity_type)
    try:
        row = await handler.save_state(db, entity_id, data.state)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    state = handler.extract_state(row)
    version = await recorder.record_version(
        db,
        entity_type,
        entity_id,
        state,
        extra_metadata=data.metadata,
        session_id=data.session_id,
    )
    if version is not None:
        undo_redo.record_pushed(data.session_id or None, entity_type, entity_id, version.id)
    return DraftResponse(
        entity_type=entity_type,
        entity_id=entity_id,
        state=state,
        content_hash=handler.hash_state(state),
        version_id=version.id if version is not None else None,
    )
