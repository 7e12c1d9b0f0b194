"""
Centralized HTTP exceptions for consistent error handling.
Every error carries a stable machine-readable ``code`` alongside its HTTP status.

Usage:
    from shared.utils.exceptions import NotFoundError, VersionConflictError

    raise OrderNotFoundError(order_id)
    raise VersionConflictError("Order", order_id, expected=1, actual=2)
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    code: str = "APP_ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        code: str | None = None,
        **log_context: Any,
    ):
        if code is not None:
            self.code = code

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, code=self.code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 401 Unauthorized Errors
# =============================================================================


class AuthenticationError(AppException):
    """Missing, invalid or expired credentials (401)."""

    code = "AUTHENTICATION_FAILED"

    def __init__(self, detail: str = "Invalid token", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", order_id)
    """

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class OrderNotFoundError(NotFoundError):
    """Order not found (or not visible to the caller's restaurant)."""

    def __init__(self, order_id: str | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("delete orders")
    """

    code = "FORBIDDEN"

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not authorized to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class PermissionDeniedError(ForbiddenError):
    """Role or tenant-scope violation on a data operation. Never retried."""

    code = "PERMISSION_DENIED"

    def __init__(self, action: str, reason: str | None = None, **log_context: Any):
        self.reason = reason
        super().__init__(action, reason=reason, **log_context)


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Quantity must be positive", field="quantity")
    """

    code = "VALIDATION_ERROR"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 422 Unprocessable Errors
# =============================================================================


class UnprocessableError(AppException):
    """Request is well-formed but conflicts with current domain state (422)."""

    code = "UNPROCESSABLE"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(UnprocessableError):
    """Status transition not allowed by the state machine. Never retried."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, from_status: str | None, to_status: str, **log_context: Any):
        self.from_status = from_status
        self.to_status = to_status
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(
            detail, entity=entity, from_status=from_status, to_status=to_status, **log_context
        )


class ItemsUnavailableError(UnprocessableError):
    """Some requested menu items are missing, unavailable or not on an active menu."""

    code = "ITEMS_UNAVAILABLE"

    def __init__(self, missing_ids: list[str] | None = None, **log_context: Any):
        self.missing_ids = sorted(missing_ids or [])
        super().__init__(
            "Some menu items are not available",
            missing_ids=self.missing_ids,
            **log_context,
        )


class TableUnavailableError(UnprocessableError):
    """Table does not belong to the restaurant or is inactive."""

    code = "TABLE_UNAVAILABLE"

    def __init__(self, table_id: str, **log_context: Any):
        super().__init__("Table not found or inactive", table_id=table_id, **log_context)


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).
    """

    code = "CONFLICT"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class VersionConflictError(ConflictError):
    """
    Optimistic-concurrency failure: the caller's version is stale.
    The caller must reload and may retry with the fresh version.
    """

    code = "VERSION_CONFLICT"

    def __init__(
        self,
        entity: str,
        entity_id: str | None = None,
        expected: int | None = None,
        actual: int | None = None,
        **log_context: Any,
    ):
        self.expected = expected
        self.actual = actual
        detail = f"{entity} was modified by another request. Reload and retry."
        super().__init__(
            detail,
            entity=entity,
            entity_id=entity_id,
            expected_version=expected,
            current_version=actual,
            **log_context,
        )


class OrderNumberConflictError(ConflictError):
    """Order number allocation kept colliding after all retries."""

    code = "ORDER_NUMBER_CONFLICT"

    def __init__(self, attempts: int, **log_context: Any):
        super().__init__(
            "Could not allocate an order number. Please retry.",
            attempts=attempts,
            **log_context,
        )


class TransactionConflictError(ConflictError):
    """
    The database aborted the transaction because of a concurrent one
    (serialization failure, deadlock, lock timeout). Safe to retry.
    """

    code = "TRANSACTION_CONFLICT"

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(
            f"Concurrent update during {operation}. Please retry.",
            operation=operation,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).
    """

    code = "INTERNAL_ERROR"

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    code = "DATABASE_ERROR"

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Database error during {operation}. Please try again."
        super().__init__(detail, operation=operation, **log_context)


# =============================================================================
# 503 Service Unavailable Errors
# =============================================================================


class ExternalServiceError(AppException):
    """External service error (502 or 503)."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        is_unavailable: bool = False,
        retry_after: int | None = None,
        **log_context: Any,
    ):
        if is_unavailable:
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            detail = f"Service {service} temporarily unavailable"
        else:
            status_code = status.HTTP_502_BAD_GATEWAY
            detail = f"Error communicating with {service}"

        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        super().__init__(
            status_code=status_code,
            detail=detail,
            log_level="error",
            headers=headers,
            service=service,
            **log_context,
        )


class LockTimeoutError(AppException):
    """
    Another request holding the same idempotency key is still executing.
    Retryable by the client with the identical request ID.
    """

    code = "LOCK_TIMEOUT"

    def __init__(self, request_id: str, retry_after: int = 1, **log_context: Any):
        self.request_id = request_id
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="A request with this idempotency key is still in progress. Retry shortly.",
            log_level="warning",
            headers={"Retry-After": str(retry_after)},
            request_id=request_id,
            **log_context,
        )


# =============================================================================
# Non-HTTP errors
# =============================================================================


class AuditLogImmutableError(RuntimeError):
    """Raised when code attempts to update or delete an audit trail row."""
