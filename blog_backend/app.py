"""
FastAPI application entry point for the blog backend.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from blog_backend.config import Settings, get_settings
from blog_backend.db import DbClient
from blog_backend.dependencies import build_db_client, build_token_service
from blog_backend.errors import ApiError, CredentialError, StoreError
from blog_backend.routes import router
from blog_backend.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "internal server error"

ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse}
    for status_code in (400, 401, 403, 404, 409, 500)
}

# Front-end files the bundled index page loads from the site root.
ROOT_WEB_FILES = {"/app.js": "app.js", "/test": "test.txt"}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def validation_message(exc: RequestValidationError) -> str:
    """Collapse FastAPI's validation errors into one readable message."""
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    loc = tuple(first.get("loc", ()))
    if first.get("type") == "json_invalid":
        return "invalid JSON body"
    if len(loc) > 1 and loc[0] in ("path", "query"):
        return f"invalid {str(loc[1]).replace('_', ' ')}"
    if loc == ("body",) and first.get("type") == "missing":
        return "request body is required"
    field = ".".join(str(part) for part in loc[1:])
    message = first.get("msg", "invalid request")
    return f"{field}: {message}" if field else message


async def api_error_handler(request: Request, exc: ApiError):
    return _error(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error(400, validation_message(exc))


async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(
        "%s %s failed", request.method, request.url.path, exc_info=exc
    )
    return _error(500, INTERNAL_ERROR_MESSAGE)


async def log_requests(request: Request, call_next):
    """Middleware to log request processing time and status."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start
    logger.info(
        "%s %s - %d - %.4fs",
        request.method,
        request.url.path,
        response.status_code,
        elapsed,
    )
    return response


def _check_signing_secret(settings: Settings) -> None:
    if not settings.uses_dev_secret:
        return
    if settings.require_jwt_secret:
        raise RuntimeError("JWT_SECRET must be set when REQUIRE_JWT_SECRET is enabled")
    logger.warning(
        "JWT_SECRET is not set; signing tokens with the insecure development secret"
    )


def _file_endpoint(path: Path):
    def serve_file():
        return FileResponse(path)

    return serve_file


def _mount_web(app: FastAPI, web_dir: Path) -> None:
    if not web_dir.is_dir():
        logger.info("No web directory at %s; static files disabled", web_dir)
        return
    app.mount("/web", StaticFiles(directory=str(web_dir)), name="web")
    routes = {"/": "index.html", **ROOT_WEB_FILES}
    for route, filename in routes.items():
        path = web_dir / filename
        if path.is_file():
            app.add_api_route(
                route, _file_endpoint(path), methods=["GET"], include_in_schema=False
            )


def create_app(
    settings: Optional[Settings] = None, db: Optional[DbClient] = None
) -> FastAPI:
    settings = settings or get_settings()
    _check_signing_secret(settings)
    owns_db = db is None
    db = db or build_db_client(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_db:
            db.close()
        logger.info("Blog backend shut down")

    app = FastAPI(title="Blog Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.tokens = build_token_service(settings)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StoreError, internal_error_handler)
    app.add_exception_handler(CredentialError, internal_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
    app.middleware("http")(log_requests)

    @app.get("/healthz", response_model=HealthResponse)
    def healthz():
        return HealthResponse(status="ok")

    app.include_router(
        router, prefix=settings.api_prefix, responses=ERROR_RESPONSES
    )
    _mount_web(app, Path(settings.web_dir))
    return app
