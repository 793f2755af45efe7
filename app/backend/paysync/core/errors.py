"""FastAPI exception handlers producing ``{"error", "message", "details"}`` bodies."""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from paysync.core.exceptions import PaySyncError, ValidationError

logger = logging.getLogger(__name__)


def paysync_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, PaySyncError)
    if exc.status_code >= 500:
        logger.error(
            "PaySyncError %s path=%s code=%s message=%s",
            exc.status_code,
            request.url.path,
            exc.code,
            exc.message,
        )
    else:
        logger.info("PaySyncError %s path=%s code=%s", exc.status_code, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    logger.info("HTTPException %s path=%s", exc.status_code, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    logger.info("ValidationError path=%s", request.url.path)
    missing = sorted(
        {".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()}
    )
    error = ValidationError(
        "Invalid request", details=", ".join(field for field in missing if field) or None
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Stack trace stays server-side
    logger.exception("UnhandledException path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal Server Error"},
    )
