"""
FastAPI dependencies shared by the routers.

Usage:
    @router.get("/orders")
    def list_orders(service: OrderService = Depends(get_order_service)):
        ...
"""

import redis
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.infrastructure.redis import get_redis_sync_client
from shared.security.auth import get_bearer_token
from shared.security.tenant_context import TenantContext

from order_api.services.audit import AuditContext, create_audit_context
from order_api.services.domain import AuthService, OrderService


def get_redis() -> redis.Redis:
    return get_redis_sync_client()


def get_audit_context(request: Request) -> AuditContext:
    return create_audit_context(request)


def current_tenant_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> TenantContext:
    """
    Resolve the caller's TenantContext from the bearer token.

    The role comes from the caller's active membership, so the context is
    rebuilt on every request.
    """
    token = get_bearer_token(authorization)
    return AuthService(db).resolve(token)


def get_order_service(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(current_tenant_context),
    redis_client: redis.Redis = Depends(get_redis),
    audit_context: AuditContext = Depends(get_audit_context),
) -> OrderService:
    return OrderService(db, ctx, redis_client=redis_client, audit_context=audit_context)
