"""
Tenant context: the immutable, request-derived identity every data access
is evaluated against.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from shared.config.constants import Role


@dataclass(frozen=True)
class TenantContext:
    """
    Who is acting, for which restaurant, with which role.

    Built once per request from a verified token (see AuthService.resolve) and
    passed by value down the call chain. ``is_system`` marks maintenance
    contexts (CLI jobs) that are never produced from a token.
    """

    role: Role | None
    user_id: str | None = None
    restaurant_id: str | None = None
    permissions: tuple[str, ...] = field(default_factory=tuple)
    email: str | None = None
    is_system: bool = False

    @classmethod
    def system(cls, restaurant_id: str | None = None) -> "TenantContext":
        """Context for internal maintenance tasks. Bypasses access control."""
        return cls(
            role=Role.OWNER,
            user_id=None,
            restaurant_id=restaurant_id,
            permissions=("*",),
            is_system=True,
        )

    @property
    def is_guest(self) -> bool:
        return self.user_id is None and not self.is_system

    def has_permission(self, permission: str) -> bool:
        """
        Check a permission string. ``*`` grants all, ``orders:*`` grants
        every ``orders:`` permission.
        """
        if "*" in self.permissions or permission in self.permissions:
            return True
        namespace = permission.split(":", 1)[0]
        return f"{namespace}:*" in self.permissions

    def at_least(self, role: Role) -> bool:
        return self.role is not None and self.role >= role
