"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ForbiddenError,
    PermissionDeniedError,
    ValidationError,
    ConflictError,
    VersionConflictError,
)
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "ForbiddenError",
    "PermissionDeniedError",
    "ValidationError",
    "ConflictError",
    "VersionConflictError",
    # schemas
    "ErrorResponse",
]
