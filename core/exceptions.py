import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class OrderStateError(ValidationError):
    """Order is not in a state that allows the requested operation."""


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class SignatureMismatch(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ConcurrentUpdateError(AppError):
    """A row changed between read and write (optimistic lock lost)."""

    status_code = status.HTTP_409_CONFLICT


class PaymentGatewayError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # First problem only, without echoing the submitted input back
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
        if first.get("type") == "missing":
            message = f"{field} is required"
        else:
            message = f"{field}: {first.get('msg', 'invalid value')}"
    logger.info("request.validation_failed path=%s message=%s", request.url.path, message)
    return JSONResponse({"detail": message}, status_code=status.HTTP_400_BAD_REQUEST)


async def fallback_handler(request: Request, exc: Exception):
    logger.error(
        "unexpected exception on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        {"detail": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, fallback_handler)
