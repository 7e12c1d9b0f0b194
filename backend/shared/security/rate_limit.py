"""
Rate limiting utilities using slowapi.
Protects the order-creation endpoint from abuse.

Usage:
    from shared.security.rate_limit import limiter

    @router.post("/orders")
    @limiter.limit(settings.create_order_rate_limit)
    def create_order(request: Request, ...):
        ...
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.settings import settings
from shared.config.logging import security_audit_logger

# Limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns a JSON response with retry information.
    """
    security_audit_logger.warning(
        "RATE_LIMIT_AUDIT: request rejected",
        path=request.url.path,
        ip_address=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Rate limit exceeded. Try again later.",
            "code": "RATE_LIMITED",
        },
        headers={"Retry-After": "60"},
    )
