"""
Response boundary: error taxonomy -> HTTP.

    InvalidDataError          400
    ForbiddenError            403
    NotFoundError             404
    ConflictError             409
    UnsupportedMediaTypeError 415
    anything else             500 (details never leak)
"""
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pawsitters.exceptions import AppError, InternalError, UnsupportedMediaTypeError
from pawsitters.logging_config import get_logger, log_error

logger = get_logger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH"}


def error_response(exc: Exception) -> tuple[int, dict]:
    """(status, body) for any exception raised below the boundary"""
    if isinstance(exc, AppError):
        return exc.status_code, exc.to_dict()
    error = InternalError("Internal server error")
    return error.status_code, error.to_dict()


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status, body = error_response(exc)
    logger.info(
        "request_failed",
        method=request.method,
        path=request.url.path,
        status=status,
        kind=exc.kind,
    )
    return JSONResponse(status_code=status, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_error(exc, {"method": request.method, "path": request.url.path})
    status, body = error_response(exc)
    return JSONResponse(status_code=status, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


async def require_json(request: Request) -> None:
    """Dependency: body-carrying requests must be application/json"""
    if request.method not in BODY_METHODS:
        return
    content_type = request.headers.get("content-type", "")
    if content_type.split(";")[0].strip().lower() != "application/json":
        raise UnsupportedMediaTypeError(
            "Request body must be JSON",
            {"content_type": content_type or None}
        )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging middleware"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(process_time, 3),
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
