"""
Error taxonomy for subscription operations.

Every error a caller can see carries a category and a message. Handlers in
app.main render these as structured JSON; clients never receive a traceback.
Receipt rejections are not errors here: they come back as
ValidationResult(valid=False, error=...).
"""
import logging
from typing import Any, Iterable, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCategory:
    """Caller-facing error categories."""

    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid-argument"
    PERMISSION_DENIED = "permission-denied"
    PERSISTENCE_ERROR = "persistence-error"
    INTERNAL = "internal"


class SubscriptionError(Exception):
    """Base error with a caller-facing category and optional details."""

    category: str = ErrorCategory.INTERNAL
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        error = {"category": self.category, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class Unauthenticated(SubscriptionError):
    category = ErrorCategory.UNAUTHENTICATED
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "User must be authenticated", details: Optional[Any] = None):
        super().__init__(message, details)


class InvalidArgument(SubscriptionError):
    category = ErrorCategory.INVALID_ARGUMENT
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def missing_fields(cls, fields: Iterable[str]) -> "InvalidArgument":
        fields = list(fields)
        noun = "field" if len(fields) == 1 else "fields"
        return cls(f"Missing required {noun}: {', '.join(fields)}", details={"missing": fields})


class PermissionDenied(SubscriptionError):
    category = ErrorCategory.PERMISSION_DENIED
    status_code = status.HTTP_403_FORBIDDEN


class PersistenceError(SubscriptionError):
    """Raised when no profile location accepted a subscription write."""

    category = ErrorCategory.PERSISTENCE_ERROR
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(SubscriptionError):
    """Unexpected failure; the original message travels in ``details``."""

    category = ErrorCategory.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def subscription_error_handler(request: Request, exc: SubscriptionError) -> JSONResponse:
    """Render a SubscriptionError as a structured response."""
    logger.warning(
        f"{exc.category} on {request.method} {request.url.path}: {exc.message}"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are reported as invalid arguments."""
    error = InvalidArgument(
        "Malformed request",
        details=[
            {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
            for err in exc.errors()
        ],
    )
    return await subscription_error_handler(request, error)
