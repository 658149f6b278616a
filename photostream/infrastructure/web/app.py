"""FastAPI application factory.

`create_app` receives the wired dependency dictionary from the composition
root and registers the exception handlers that turn application errors into
JSON responses.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from photostream import __version__
from photostream.domain.errors import AppError, RateLimitExceededError
from photostream.infrastructure.config.settings import get_config, is_development
from photostream.infrastructure.monitoring.error_tracking import capture_error
from photostream.infrastructure.web.routes import router

logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    capture_error(exc, {"path": request.url.path, "method": request.method})
    body: Dict[str, Any] = {"success": False, **exc.to_dict()}
    headers: Dict[str, str] = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)
        headers["X-RateLimit-Remaining"] = str(exc.remaining)
        if exc.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(exc.reset_at))
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        {"success": False, "error": "Invalid request body", "code": "VALIDATION_ERROR", "details": exc.errors()},
        status_code=400,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    capture_error(exc, {"path": request.url.path, "method": request.method})
    body: Dict[str, Any] = {"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}
    if is_development():
        body["details"] = str(exc)
    return JSONResponse(body, status_code=500)


def create_app(dependencies: Dict[str, Any]) -> FastAPI:
    """Builds the HTTP application around already-constructed services.

    The media store client is closed when the server shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        media_store = dependencies.get('media_store')
        if media_store is not None:
            await media_store.close()
            logger.info("Media store client closed.")

    app = FastAPI(
        lifespan=lifespan,
        title="PhotoStream API",
        version=__version__,
        description="Batch metadata updates, deletes and webhooks for hosted photos.",
    )
    app.state.dependencies = dependencies
    app.state.started_at = time.monotonic()

    origins = get_config('web.allowed_origins', ["*"])
    if isinstance(origins, str):
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    logger.info("HTTP application created.")
    return app
