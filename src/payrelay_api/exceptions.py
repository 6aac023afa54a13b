"""FastAPI exception handlers for converting relay errors to HTTP responses.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: malformed webhook or missing parameters
- 403 Forbidden: session ownership mismatch
- 404 Not Found: unknown category or session
- 409 Conflict: access already granted
- 500 Internal Server Error: storage failures (safe to retry)

Usage:
    from payrelay_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from payrelay.models import ErrorCode, PersistenceError, RelayError
from payrelay.utils.logging import get_logger

from .models.common import ValidationErrorDetail, ValidationErrorResponse

logger = get_logger(__name__)

ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_PARAMETERS: HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED: HTTP_403_FORBIDDEN,
    ErrorCode.CATEGORY_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.SESSION_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.ACCESS_ALREADY_GRANTED: HTTP_409_CONFLICT,
    ErrorCode.PERSISTENCE_FAILURE: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.ACCESS_GRANT_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """Get HTTP status code for an ErrorCode, defaulting to 400."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_400_BAD_REQUEST)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Convert a RelayError to its JSON error body and status code."""
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


async def persistence_error_handler(
    request: Request, exc: PersistenceError
) -> JSONResponse:
    """Storage failures become a retryable 500 naming the failed operation."""
    logger.error("%s %s storage failure: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=exc.to_relay_error().to_response().model_dump(mode="json"),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request validation failures as 400 in the standard structure."""
    details = [
        ValidationErrorDetail(
            loc=[part if isinstance(part, int) else str(part) for part in err.get("loc", ())],
            msg=str(err.get("msg", "")),
            type=str(err.get("type", "")),
        )
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content=ValidationErrorResponse(details=details).model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(RelayError, relay_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PersistenceError, persistence_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
