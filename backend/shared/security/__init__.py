"""
Security module: JWT handling, tenant context, rate limiting.
"""

from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
)
from shared.security.tenant_context import TenantContext
from shared.security.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
)

__all__ = [
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    # tenant context
    "TenantContext",
    # rate_limit
    "limiter",
    "rate_limit_exceeded_handler",
]
