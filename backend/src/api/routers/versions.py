"""Version history API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_version_service
from models.version import VersionEntityType
from schemas.version import (
    VersionCreate,
    VersionListResponse,
    VersionResponse,
    VersionSnapshotResponse,
    VersionSummary,
    VersionSummaryListResponse,
)
from services.version_service import VersionService

router = APIRouter(prefix="/versions", tags=["versions"])


@router.post("/", response_model=VersionResponse, status_code=201)
async def create_version(
    data: VersionCreate,
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> VersionResponse:
    """
    Store a version record computed by the client.

    Retention applies: the entity's oldest versions beyond the per-entity
    limit are pruned.
    """
    version = await versions.create_version(db, data)
    return VersionResponse.model_validate(version)


@router.get("/", response_model=VersionListResponse)
async def list_versions(
    entity_type: VersionEntityType = Query(description="Type of the versioned entity"),
    entity_id: UUID = Query(description="ID of the versioned entity"),
    limit: int = Query(default=50, ge=1, le=100, description="Number of records to return"),
    offset: int = Query(default=0, ge=0, description="Number of records to skip"),
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> VersionListResponse:
    """Get versions of an entity, newest first."""
    items, total = await versions.get_version_history(
        db, entity_type, entity_id, limit=limit, offset=offset,
    )
    return VersionListResponse(
        items=[VersionResponse.model_validate(v) for v in items],
        total=total,
        offset=offset,
        limit=limit,
        has_more=offset + len(items) < total,
    )


@router.get("/summary", response_model=VersionSummaryListResponse)
async def get_version_summary(
    entity_type: VersionEntityType = Query(description="Type of the versioned entity"),
    entity_id: UUID = Query(description="ID of the versioned entity"),
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> VersionSummaryListResponse:
    """Get descriptions of an entity's recent versions without their patches."""
    rows = await versions.get_version_history_summary(db, entity_type, entity_id, limit=limit)
    total = await versions.get_version_count(db, entity_type, entity_id)
    return VersionSummaryListResponse(
        items=[VersionSummary.model_validate(row) for row in rows],
        total=total,
    )


@router.get("/snapshot", response_model=VersionSnapshotResponse)
async def get_latest_snapshot(
    entity_type: VersionEntityType = Query(description="Type of the versioned entity"),
    entity_id: UUID = Query(description="ID of the versioned entity"),
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> VersionSnapshotResponse:
    """Get the most recent full state snapshot stored for an entity."""
    version = await versions.get_latest_snapshot(db, entity_type, entity_id)
    if version is None:
        raise HTTPException(status_code=404, detail="No snapshot stored for this entity")
    return VersionSnapshotResponse.model_validate(version)


@router.get("/session/{session_id}", response_model=list[VersionResponse])
async def get_session_versions(
    session_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> list[VersionResponse]:
    """Get versions recorded during an editing session, newest first."""
    items = await versions.get_versions_by_session(db, session_id, limit=limit)
    return [VersionResponse.model_validate(v) for v in items]


@router.get("/{version_id}", response_model=VersionResponse)
async def get_version(
    version_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    versions: VersionService = Depends(get_version_service),
) -> VersionResponse:
    """Get a single version record."""
    version = await versions.get_version(db, version_id)
    if version is None:
        raise HTTPException(status_code=404, detail="Version not found")
    return VersionResponse.model_validate(version)
