"""Rate limiting and error translation shared by every router."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.domain.exceptions import (
    NotAuthenticatedError,
    NotFoundError,
    RideError,
    StateError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def status_for(exc: RideError) -> int:
    if isinstance(exc, NotAuthenticatedError):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, StateError):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, TransientError):
        return 503
    return 400


async def ride_error_handler(request: Request, exc: RideError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc.message)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": type(exc).__name__},
    )
