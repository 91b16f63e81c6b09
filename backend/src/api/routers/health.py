"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_state_cache, get_undo_redo_marks
from core.state_cache import PreviousStateCache, UndoRedoMarks


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    cached_states: int  # Entities with a version-recording baseline
    pending_undo_redo_marks: int  # Undo/redo writes not yet recorded


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_async_session),
    cache: PreviousStateCache = Depends(get_state_cache),
    marks: UndoRedoMarks = Depends(get_undo_redo_marks),
) -> HealthResponse:
    """Check application and database health."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        cached_states=len(cache),
        pending_undo_redo_marks=len(marks.active_keys()),
    )
