"""
Shared building blocks: model base class and service errors.
"""

from tuitionhub.modules.shared.concurrency import (
    MAX_WRITE_ATTEMPTS,
    ConcurrentModificationError,
    run_with_version_retry,
)
from tuitionhub.modules.shared.errors import (
    STORAGE_ERRORS,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    StorageUnavailableError,
    ValidationError,
    internal_error_exception,
    storage_unavailable_exception,
    to_http_exception,
)
from tuitionhub.modules.shared.models import BaseModel, enum_type

__all__ = [
    "BaseModel",
    "enum_type",
    "ServiceError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "StorageUnavailableError",
    "ConcurrentModificationError",
    "MAX_WRITE_ATTEMPTS",
    "run_with_version_retry",
    "STORAGE_ERRORS",
    "to_http_exception",
    "storage_unavailable_exception",
    "internal_error_exception",
]
