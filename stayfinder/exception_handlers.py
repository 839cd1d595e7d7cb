import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from .errors import BookingError, StorageError

logger = logging.getLogger("stayfinder")


async def booking_error_handler(_request: Request, exc: BookingError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error(f"Storage error: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )
