"""
FastAPI application entry point for the newsdesk backend.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from newsdesk.config import Settings, get_settings
from newsdesk.dependencies import build_services
from newsdesk.errors import NewsdeskError, NotFound
from newsdesk.middleware import CORS_HEADERS, CorsMiddleware
from newsdesk.routes import router
from newsdesk.storage import LocalStorageClient

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NewsdeskError)
    async def handle_newsdesk_error(request: Request, exc: NewsdeskError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if not errors:
            return _error(400, "Invalid request")
        first = errors[0]
        if first.get("type") == "json_invalid":
            return _error(400, "Body must be JSON")
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "invalid value")
        return _error(400, f"{field}: {message}" if field else message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unknown methods on known paths both read as 404.
        if exc.status_code in (404, 405):
            return _error(404, NotFound.default_message)
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        # Runs outside the middleware stack, so CORS headers are added here.
        response = _error(500, "Internal server error")
        response.headers.update(CORS_HEADERS)
        return response


def _prepare_uploads_dir(path: str) -> bool:
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("Could not create uploads directory %s: %s", path, exc)
    return Path(path).is_dir()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Newsdesk Backend (FastAPI)", version="0.1.0")
    app.state.services = build_services(settings)
    app.add_middleware(CorsMiddleware)
    _register_error_handlers(app)

    app.include_router(router)
    if settings.api_prefix and settings.api_prefix != "/":
        app.include_router(router, prefix=settings.api_prefix.rstrip("/"))

    storage = app.state.services.storage
    if isinstance(storage, LocalStorageClient) and _prepare_uploads_dir(settings.uploads_dir):
        app.mount(
            settings.uploads_url_prefix,
            StaticFiles(directory=settings.uploads_dir, check_dir=False),
            name="uploads",
        )
    return app


app = create_app()
