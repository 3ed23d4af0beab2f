"""Translate core errors into HTTP responses."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from playledger.core.errors import (
    AuthError,
    DurabilityError,
    PlayLedgerError,
    SerializationError,
    TransientSourceError,
)

logger = logging.getLogger(__name__)

_STATUS = {
    AuthError: status.HTTP_401_UNAUTHORIZED,
    TransientSourceError: status.HTTP_502_BAD_GATEWAY,
    DurabilityError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SerializationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: Exception) -> int:
    for cls, code in _STATUS.items():
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PlayLedgerError)
    async def playledger_error_handler(request: Request, exc: PlayLedgerError) -> JSONResponse:
        code = status_for(exc)
        logger.warning("%s %s: %s (%d)", request.method, request.url.path, exc, code)
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.info("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})
