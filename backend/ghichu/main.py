"""
Ghichu Backend - Main FastAPI Application

Text-note service: clients PUT text under a generated identifier and GET it
back. Notes expire after a TTL, are served through a write-through cache and
can alias another note's content.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .constants import APP_NAME, APP_VERSION
from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .domain.notes.exceptions import (
    NoteStoreException,
    InvalidKeyException,
    NoteNotFoundException,
    StorageFailureException,
)
from .infrastructure.repositories import build_repositories
from .services.note_store import NoteStore, StoreConfig
from .api.endpoints.health import router as health_router
from .api.endpoints.notes import router as notes_router

logger = structlog.get_logger()

ERROR_STATUS_CODES = {
    InvalidKeyException: 400,
    NoteNotFoundException: 404,
    StorageFailureException: 503,
}


def create_app(
    settings: Optional[Settings] = None, store: Optional[NoteStore] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (environment-derived if omitted)
        store: Pre-built note store; built from settings if omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the note store on startup and close it on shutdown."""
        note_store = store or NoteStore(
            build_repositories(settings), StoreConfig.from_settings(settings)
        )
        app.state.note_store = note_store
        await note_store.start()
        logger.info(
            f"{APP_NAME} API started",
            version=APP_VERSION,
            environment=settings.ENVIRONMENT,
            backend=note_store.repositories.backend,
        )

        yield

        logger.info(f"Shutting down {APP_NAME} API")
        try:
            await note_store.stop()
        except Exception as e:
            logger.error("Error during application shutdown", error=str(e))

    app = FastAPI(
        title=f"{APP_NAME} API",
        description="Ephemeral text notes with TTL expiry and aliases",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health first: the notes router owns every other single-segment path
    app.include_router(health_router)
    app.include_router(notes_router, tags=["notes"])

    @app.exception_handler(NoteStoreException)
    async def note_store_exception_handler(request: Request, exc: NoteStoreException):
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        if status_code >= 500:
            logger.error(
                "Note store failure",
                path=request.url.path,
                error_code=exc.error_code,
                error=exc.message,
            )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return app


configure_logging(get_settings())
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
