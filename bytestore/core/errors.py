# bytestore/core/errors.py
"""
Error kinds surfaced by the services and their HTTP rendering.

Service code raises these; the handlers registered by
`register_exception_handlers` turn them into JSON responses. Internal
errors are logged with full context and returned opaquely.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"message": self.message}
        payload.update(self.extra)
        return payload


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class InvalidInput(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid data"


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class InvalidTransition(ServiceError):
    """
    A state change the transition table does not allow, including requests
    against terminal states and updates that lost a race. Always carries the
    current state and its legal successors so the caller can self-correct.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, current_state: str, allowed: Iterable[str], requested: Optional[str] = None,
                 message: Optional[str] = None, **extra: Any):
        self.current_state = current_state
        self.allowed = list(allowed)
        self.requested = requested
        if message is None:
            message = f"Invalid state transition: from '{current_state}' to '{requested}'"
        super().__init__(message, estado_actual=current_state, transiciones_validas=self.allowed, **extra)


class Internal(ServiceError):
    """Data-store failure or unexpected fault. The payload never leaks the cause."""

    def __init__(self, message: Optional[str] = None, **context: Any):
        # context is for the server log only
        self.context = context
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.default_message}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, Internal):
        logger.error(
            "Internal error on %s %s: %s context=%s",
            request.method, request.url.path, exc.message, exc.context,
            exc_info=exc.__cause__ or exc,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid data", "errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": Internal.default_message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
