import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.domain.exceptions import BookingEngineError


logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


async def booking_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return _envelope(exc.status_code, str(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in err["loc"][1:]) for err in exc.errors()})
    return _envelope(
        status.HTTP_400_BAD_REQUEST,
        f"Missing or invalid fields: {', '.join(fields)}",
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s", request.url.path)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


EXCEPTION_HANDLERS = {
    BookingEngineError: booking_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
