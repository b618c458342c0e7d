"""Global error handlers: every error leaves as JSON ``{"detail": ...}``."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crewmate.exceptions import (
    ConcurrentUpdateError,
    EngagementError,
    NotFoundError,
    StoreUnavailableError,
)

logger = structlog.get_logger()

_STATUS_BY_ERROR: tuple[tuple[type[EngagementError], int], ...] = (
    (NotFoundError, 404),
    (ConcurrentUpdateError, 409),
    (StoreUnavailableError, 503),
)


def status_for(exc: EngagementError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(EngagementError)
    async def engagement_exception_handler(request: Request, exc: EngagementError) -> JSONResponse:
        status_code = status_for(exc)
        logger.warning("engagement_error", path=request.url.path, error=str(exc), status_code=status_code)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
