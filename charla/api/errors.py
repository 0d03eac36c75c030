"""
Map domain exceptions to HTTP error envelopes.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from charla.api.schemas import error_response
from charla.shared.exceptions import (
    CharlaError,
    ConcurrentModificationError,
    ContentError,
    InvalidPhaseError,
    InvalidRequestError,
    NotFoundError,
    TranscriptionError,
)
from charla.shared.logging import get_logger

logger = get_logger(__name__)

# Checked in order; subclasses before their bases.
STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InvalidPhaseError, 409),
    (ConcurrentModificationError, 409),
    (InvalidRequestError, 400),
    (TranscriptionError, 502),
    (ContentError, 500),
)


def status_for(exc: CharlaError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def charla_error_handler(request: Request, exc: CharlaError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            f"{type(exc).__name__} on {request.url.path}: {exc}",
            extra={"path": request.url.path},
        )
    return JSONResponse(status_code=status_code, content=error_response(str(exc)))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"path": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_response("Invalid request", details))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CharlaError, charla_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
