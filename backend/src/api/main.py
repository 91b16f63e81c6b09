"""FastAPI application entry point."""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.dependencies import get_undo_redo_marks
from api.routers import drafts, entities, health, publish, undo_redo, versions
from core.config import get_settings
from services.exceptions import (
    EntityNotFoundError,
    InvalidStateError,
    PublishBatchError,
    UndoRedoError,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    yield

    # Shutdown: cancel pending undo/redo mark timers
    get_undo_redo_marks().clear_all()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # API responses are never framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


def _error_content(error: str, message: str, **context: object) -> dict:
    return {"detail": {"error": error, "message": message, **context}}


app_settings = get_settings()

app = FastAPI(
    title="Page Builder API",
    description="Draft editing with undo/redo version history and publishing.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(UndoRedoError)
async def undo_redo_exception_handler(_request: Request, exc: UndoRedoError) -> JSONResponse:
    """Refused undo/redo: the client should reload the entity's history."""
    return JSONResponse(
        status_code=409,
        content=_error_content(exc.error_code, str(exc), **exc.context()),
    )


@app.exception_handler(EntityNotFoundError)
async def entity_not_found_exception_handler(
    _request: Request, exc: EntityNotFoundError,
) -> JSONResponse:
    """Missing draft or published row."""
    return JSONResponse(
        status_code=404,
        content=_error_content(
            "not_found",
            str(exc),
            entity_type=str(exc.entity_type),
            entity_id=str(exc.entity_id),
            is_published=exc.is_published,
        ),
    )


@app.exception_handler(InvalidStateError)
async def invalid_state_exception_handler(
    _request: Request, exc: InvalidStateError,
) -> JSONResponse:
    """Lifecycle operation not valid for the row's current state."""
    return JSONResponse(status_code=400, content=_error_content("invalid_state", str(exc)))


@app.exception_handler(PublishBatchError)
async def publish_batch_exception_handler(
    _request: Request, exc: PublishBatchError,
) -> JSONResponse:
    """Publish write failed; earlier batches are committed and a retry resumes."""
    return JSONResponse(
        status_code=500,
        content=_error_content(
            "publish_failed",
            str(exc),
            publishable_type=str(exc.publishable_type),
            batch_index=exc.batch_index,
            applied=exc.applied,
            step=exc.step,
        ),
    )


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(versions.router)
app.include_router(drafts.router)
app.include_router(undo_redo.router)
app.include_router(entities.router)
app.include_router(publish.router)
