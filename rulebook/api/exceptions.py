"""Domain errors and their translation into JSON error responses.

Every error leaves the API as::

    {"error": {"code": ..., "message": ..., "status": ..., "details": {...}}}
"""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rulebook.logging_config import get_logger

logger = get_logger(__name__)


class RulebookException(Exception):
    """Base class of the errors raised by services and repositories.

    Subclasses pick their HTTP status and machine-readable code through the
    ``status_code`` and ``error_code`` class attributes.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


class NotFoundError(RulebookException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(
            f"{resource_type} not found: {identifier}",
            details={"resource_type": resource_type, "identifier": identifier},
        )


class ValidationError_(RulebookException):
    """Input that is well-formed but violates a rule of the domain."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details={"field": field, **(details or {})})


class ConflictError(RulebookException):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"

    def __init__(self, message: str, details: Optional[dict] = None, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code, details=details)


class DuplicateKeyError(ConflictError):
    error_code = "DUPLICATE_KEY"

    def __init__(self, rule_key: str):
        super().__init__(f"A rule with the key '{rule_key}' already exists", details={"rule_key": rule_key})


class AlreadyActiveError(ConflictError):
    error_code = "ALREADY_ACTIVE"

    def __init__(self, rule_key: str, profile_id: str):
        super().__init__(
            f"Rule '{rule_key}' is already active in profile {profile_id}",
            details={"rule_key": rule_key, "profile_id": profile_id},
        )


class InvalidTemplateError(RulebookException):
    """A custom rule was requested from a rule that is not a template."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_TEMPLATE"

    def __init__(self, rule_key: str):
        super().__init__(f"This rule is not a template rule: {rule_key}", details={"rule_key": rule_key})


class UnknownParamError(RulebookException):
    """Parameters were given that the rule does not declare."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "UNKNOWN_PARAM"

    def __init__(self, rule_key: str, param_names: list[str]):
        names = sorted(param_names)
        super().__init__(
            f"Rule '{rule_key}' has no parameter named: {', '.join(names)}",
            details={"rule_key": rule_key, "params": names},
        )


def _error_response(status_code: int, code: str, message: str, details: Optional[dict[str, Any]] = None) -> JSONResponse:
    body: dict[str, Any] = {"code": code, "message": message, "status": status_code}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


async def rulebook_exception_handler(request: Request, exc: RulebookException) -> JSONResponse:
    logger.warning(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        error_code=exc.error_code,
        error=exc.message,
    )
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and query strings field by field."""
    errors = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning("Malformed request", path=request.url.path, errors=errors)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database errors the repositories did not translate themselves."""
    if isinstance(exc, IntegrityError):
        logger.warning("Constraint violation", path=request.url.path, error=str(exc.orig))
        return _error_response(
            status.HTTP_409_CONFLICT, "INTEGRITY_ERROR", "Database integrity constraint violated"
        )

    logger.error("Database error", path=request.url.path, error=str(exc), exc_info=True)
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DATABASE_ERROR",
        "Database operation failed. Please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    handlers = {
        RulebookException: rulebook_exception_handler,
        RequestValidationError: validation_exception_handler,
        SQLAlchemyError: sqlalchemy_exception_handler,
    }
    for exc_class, handler in handlers.items():
        app.add_exception_handler(exc_class, handler)
