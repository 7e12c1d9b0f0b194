"""
Domain Services.

Services contain business logic and orchestrate operations. They reach the
database only through the tenant-scoped gateway.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)
        ↓
    TenantScopedGateway (scope, access control, audit)
        ↓
    Model (entity)

Usage:
    from order_api.services.domain import OrderService

    service = OrderService(db, ctx, redis_client=redis_client)
    result = service.create_order(body, request_id=request_id)
"""

from .auth_service import AuthService
from .membership_service import MembershipService
from .order_lifecycle import (
    calculate_totals,
    estimate_preparation_time,
    format_order_number,
    is_valid_transition,
)
from .order_service import OrderListFilters, OrderService
from .restaurant_service import RestaurantService

__all__ = [
    "AuthService",
    "MembershipService",
    "OrderListFilters",
    "OrderService",
    "RestaurantService",
    "calculate_totals",
    "estimate_preparation_time",
    "format_order_number",
    "is_valid_transition",
]
