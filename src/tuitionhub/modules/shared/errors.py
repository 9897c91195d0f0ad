"""
Service error taxonomy shared by all modules.

Services raise these; routers convert them to HTTPException with the
``{"error": CODE, "message": ...}`` detail body.
"""

from fastapi import HTTPException, status
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ValidationError(ServiceError):
    """Input passed schema validation but violates a business rule."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message=message, error_code=error_code, status_code=400)


class ForbiddenError(ServiceError):
    """Caller has the wrong role or does not own the resource."""

    def __init__(self, message: str = "Not authorized", error_code: str = "FORBIDDEN"):
        super().__init__(message=message, error_code=error_code, status_code=403)


class NotFoundError(ServiceError):
    """Requested resource does not exist."""

    def __init__(self, message: str, error_code: str = "NOT_FOUND"):
        super().__init__(message=message, error_code=error_code, status_code=404)


class ConflictError(ServiceError):
    """Request conflicts with the current state of the resource."""

    def __init__(self, message: str, error_code: str = "CONFLICT"):
        super().__init__(message=message, error_code=error_code, status_code=409)


class StorageUnavailableError(ServiceError):
    """The database timed out or is unreachable. Safe to retry later."""

    def __init__(self, message: str = "Database temporarily unavailable. Please try again later."):
        super().__init__(message=message, error_code="STORAGE_UNAVAILABLE", status_code=503)


# Driver/pool errors that mean "try again", not "this request is invalid"
STORAGE_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    PoolTimeoutError,
    TimeoutError,
    ConnectionError,
)


def to_http_exception(e: ServiceError) -> HTTPException:
    """Convert a service error to an HTTPException."""
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def storage_unavailable_exception() -> HTTPException:
    """HTTPException for transient storage failures."""
    return to_http_exception(StorageUnavailableError())


def internal_error_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )
