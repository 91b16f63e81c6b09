"""Draft CRUD endpoints for every publishable entity type."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_undo_redo_service, get_version_recorder
from schemas.entity import EntityCreate, EntityListResponse, EntityResponse, EntityUpdate
from services.entity_handlers import get_entity_handler, version_key_for_row
from services.entity_store import PublishableType, get_repository
from services.exceptions import EntityNotFoundError
from services.undo_redo_service import UndoRedoService
from services.version_recorder import VersionRecorder

router = APIRouter(prefix="/entities", tags=["entities"])


async def _record_change(
    db: AsyncSession,
    recorder: VersionRecorder,
    undo_redo: UndoRedoService,
    publishable_type: PublishableType,
    row: object,
) -> None:
    """
    Feed versioned state written through these endpoints to the version recorder.

    Recorded versions join the cursors of sessions editing the entity, so
    their next undo reverts this change first.
    """
    key = version_key_for_row(publishable_type, row)
    if key is None:
        return
    entity_type, entity_id = key
    state = get_entity_handler(entity_type).extract_state(row)
    version = await recorder.record_version(db, entity_type, entity_id, state)
    if version is not None:
        undo_redo.record_pushed(None, entity_type, entity_id, version.id)


@router.get("/{publishable_type}", response_model=EntityListResponse)
async def list_entities(
    publishable_type: PublishableType,
    published: bool = Query(default=False, description="List published rows instead of drafts"),
    include_deleted: bool = Query(default=False, description="Include soft-deleted rows"),
    db: AsyncSession = Depends(get_async_session),
) -> EntityListResponse:
    """List draft (or published) rows of an entity type, oldest first."""
    repository = get_repository(publishable_type)
    if published:
        rows = await repository.list_published(db, include_deleted=include_deleted)
    else:
        rows = await repository.list_drafts(db, include_deleted=include_deleted)
    return EntityListResponse(
        items=[EntityResponse.from_row(row) for row in rows],
        total=len(rows),
    )


@router.get("/{publishable_type}/{entity_id}", response_model=EntityResponse)
async def get_entity(
    publishable_type: PublishableType,
    entity_id: UUID,
    published: bool = Query(default=False, description="Get the published row"),
    include_deleted: bool = Query(default=False, description="Return soft-deleted rows"),
    db: AsyncSession = Depends(get_async_session),
) -> EntityResponse:
    """Get the draft (or published) row of an entity."""
    repository = get_repository(publishable_type)
    if published:
        row = await repository.get_published_by_id(db, entity_id, include_deleted=include_deleted)
    else:
        row = await repository.get_draft_by_id(db, entity_id, include_deleted=include_deleted)
    if row is None:
        raise EntityNotFoundError(publishable_type, entity_id, is_published=published)
    return EntityResponse.from_row(row)


@router.post("/{publishable_type}", response_model=EntityResponse, status_code=201)
async def create_entity(
    publishable_type: PublishableType,
    data: EntityCreate,
    db: AsyncSession = Depends(get_async_session),
    recorder: VersionRecorder = Depends(get_version_recorder),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> EntityResponse:
    """
    Create a draft row.

    Versioned state (layer trees, layer style values) becomes the baseline
    for recording later changes.
    """
    repository = get_repository(publishable_type)
    fields = dict(data.fields)
    if data.id is not None:
        fields["id"] = data.id
    try:
        row = await repository.create_draft(db, **fields)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail=f"{repository.entity_name} conflicts with an existing row or "
            "references a missing parent",
        )
    await _record_change(db, recorder, undo_redo, publishable_type, row)
    return EntityResponse.from_row(row)


@router.patch("/{publishable_type}/{entity_id}", response_model=EntityResponse)
async def update_entity(
    publishable_type: PublishableType,
    entity_id: UUID,
    data: EntityUpdate,
    db: AsyncSession = Depends(get_async_session),
    recorder: VersionRecorder = Depends(get_version_recorder),
    undo_redo: UndoRedoService = Depends(get_undo_redo_service),
) -> EntityResponse:
    """Update columns of an active draft. Changes to versioned state are recorded."""
    repository = get_repository(publishable_type)
    try:
        row = await repository.update_draft(db, entity_id, **data.fields)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail=f"{repository.entity_name} references a missing parent",
        )
    await _record_change(db, recorder, undo_redo, publishable_type, row)
    return EntityResponse.from_row(row)


@router.delete("/{publishable_type}/{entity_id}", response_model=EntityResponse)
async def delete_entity(
    publishable_type: PublishableType,
    entity_id: UUID,
    db: AsyncSession = Depends(get_async_session),
) -> EntityResponse:
    """
    Soft delete a draft.

    The published row stays live until the next publish, which removes it.
    """
    row = await get_repository(publishable_type).soft_delete_draft(db, entity_id)
    return EntityResponse.from_row(row)


@router.post("/{publishable_type}/{entity_id}/restore", response_model=EntityResponse)
async def restore_entity(
    publishable_type: PublishableType,
    entity_id: UUID,
    db: AsyncSession = Depends(get_async_session),
) -> EntityResponse:
    """Restore a soft-deleted draft."""
    row = await get_repository(publishable_type).restore_draft(db, entity_id)
    return EntityResponse.from_row(row)
