"""Translate booking engine errors into HTTP responses."""

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from booking_engine.errors import BookingError, ErrorKind

logger = structlog.get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.VALIDATION: 422,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.GATEWAY_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.SIGNATURE_INVALID: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: BookingError) -> int:
    return STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)


async def booking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Render a ``BookingError`` as ``{"error", "message", "details"}``.

    Registered on the app for ``BookingError``; anything else falls through
    to the route's own 500 handling.
    """
    if not isinstance(exc, BookingError):
        raise exc

    code = status_for(exc)
    log = logger.warning if code < 500 else logger.error
    log(
        "request_failed",
        error=exc.kind.value,
        message=exc.message,
        path=request.url.path,
        status_code=code,
    )
    return JSONResponse(status_code=code, content=jsonable_encoder(exc.to_dict()))
