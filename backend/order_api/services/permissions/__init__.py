"""
Role-based access control for data operations.

Usage:
    from order_api.services.permissions import EntityKind, Operation, evaluate

    decision = evaluate(ctx, EntityKind.ORDER, Operation.UPDATE)
    if not decision:
        raise PermissionDeniedError("update orders", reason=decision.reason)
"""

from .rules import (
    ACCESS_RULES,
    AccessDecision,
    EntityKind,
    Operation,
    evaluate,
    minimum_role,
)
from .context import PermissionContext

__all__ = [
    "ACCESS_RULES",
    "AccessDecision",
    "EntityKind",
    "Operation",
    "evaluate",
    "minimum_role",
    "PermissionContext",
]
