"""ASGI entry-point for the FastAPI application.

This module
1. instantiates the :class:`fastapi.FastAPI` application;
2. wires the API routers located in ``audio_assembly.api``;
3. registers global exception handlers and middleware; and
4. performs a few start-up sanity checks (log directory, storage bucket
   writable, database schema present).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Internal utilities
from audio_assembly.exceptions import AppBaseException
from audio_assembly.logging_config import LOG_DIR as APP_LOG_DIR
from audio_assembly.logging_config import setup_logging
from audio_assembly.utils.storage import BUCKET_DIR, DATA_ROOT, ensure_dir_exists

from audio_assembly.api import api_router


# ---------------------------------------------------------------------------
# Logging must be configured as soon as possible so that any errors during
# import/start-up are captured.
# ---------------------------------------------------------------------------
setup_logging()
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def _error_payload(detail) -> dict:
    message = detail if isinstance(detail, str) else "Request failed"
    return {"error": message, "detail": detail}


def create_app() -> FastAPI:  # noqa: D401 – factory nomenclature is fine
    """Wire and return the FastAPI application instance."""

    app = FastAPI(
        title="Protocol Audio Assembly API",
        version="0.1.0",
        docs_url="/api/docs",
    )

    # ------------------------------------------------------------------
    # Start-up checks
    # ------------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_checks() -> None:  # noqa: D401
        logger.info("Running start-up checks …")

        for path in (APP_LOG_DIR, DATA_ROOT, BUCKET_DIR):
            try:
                ensure_dir_exists(Path(path))
            except Exception as exc:  # pragma: no cover – defensive
                logger.critical("Cannot create/access directory %s – %s", path, exc)
            else:
                writable = os.access(str(path), os.W_OK)
                logger.info("Directory %s is %swritable", path, "" if writable else "NOT ")

        logger.info("Start-up checks finished.")

    # ------------------------------------------------------------------
    # Exception handlers
    # ------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(  # noqa: D401
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("Request validation error: %s", exc.errors())
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(  # noqa: D401
        _request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("HTTP exception %s: %s", exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail))

    @app.exception_handler(AppBaseException)
    async def _app_error_handler(  # noqa: D401
        _request: Request,
        exc: AppBaseException,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.error("Application exception: %s", exc.detail, exc_info=True)
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail))

    @app.exception_handler(Exception)
    async def _generic_error_handler(  # noqa: D401
        _request: Request,
        exc: Exception,
    ) -> JSONResponse:  # type: ignore[valid-type]
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content=_error_payload("Internal Server Error"))

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    # ------------------------------------------------------------------
    # Ensure DB schema exists (development convenience only).
    # ------------------------------------------------------------------

    from audio_assembly.db.database import create_tables  # local import to avoid circular deps

    create_tables()

    @app.get("/api/health")
    async def _health() -> dict[str, str]:  # noqa: D401
        return {"status": "ok"}

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw exception objects pydantic may attach."""
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in exc.errors()
    ]


# Instantiate at import time so `uvicorn audio_assembly.main:app` works.
app: FastAPI = create_app()
