"""
Tenant-scoped data gateway: explicit interceptor pipeline over SQLAlchemy.
"""

from .operation import DataAction, DataOperation
from .registry import ENTITY_REGISTRY, EntitySpec, spec_for
from .gateway import TenantScopedGateway

__all__ = [
    "DataAction",
    "DataOperation",
    "ENTITY_REGISTRY",
    "EntitySpec",
    "spec_for",
    "TenantScopedGateway",
]
