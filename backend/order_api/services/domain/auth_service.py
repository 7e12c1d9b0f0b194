"""
Auth Domain Service.

Turns verified tokens into TenantContexts and issues tokens for known users.
The role in a restaurant-scoped context always comes from the stored
membership, never from the token alone, so a demoted or removed member loses
access as soon as their membership changes.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from shared.config.constants import AuditAction, ROLE_PERMISSIONS, Role
from shared.config.logging import audit_auth_event, get_logger, mask_email
from shared.infrastructure.db import safe_commit
from shared.security.auth import sign_jwt, verify_jwt
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import AuthenticationError, NotFoundError

from order_api.services.audit import AuditContext, AuditRecorder
from order_api.services.gateway import TenantScopedGateway
from order_api.services.permissions import EntityKind

logger = get_logger(__name__)


class AuthService:
    """
    Usage:
        ctx = AuthService(db).resolve(token)
        token = AuthService(db).issue_token(user_id, restaurant_id)
    """

    def __init__(self, db: Session, audit_context: AuditContext | None = None):
        self._db = db
        self._audit_context = audit_context
        # Identity lookups run before any tenant context exists
        self._lookup = TenantScopedGateway(db, TenantContext.system())

    def _active_membership(self, user_id: str, restaurant_id: str):
        membership = self._lookup.find_first(
            EntityKind.MEMBERSHIP,
            where={"user_id": user_id, "restaurant_id": restaurant_id, "is_active": True},
        )
        if membership is None:
            return None
        restaurant = self._lookup.find_first(
            EntityKind.RESTAURANT, where={"id": restaurant_id, "is_active": True}
        )
        return membership if restaurant is not None else None

    def resolve(self, token: str) -> TenantContext:
        """
        Verify ``token`` and build the caller's TenantContext.

        Guest tokens (no subject) are only accepted with the CUSTOMER role.

        Raises:
            AuthenticationError: token invalid, user unknown or inactive, or no
                active membership in the claimed restaurant.
        """
        try:
            payload = verify_jwt(token)
            user_id = payload.get("sub")
            restaurant_id = payload.get("restaurant_id")
            claimed_role = Role.parse(payload.get("role"))
            if claimed_role is None:
                raise AuthenticationError("Invalid token: unknown role")

            if user_id is None:
                if claimed_role is not Role.CUSTOMER:
                    audit_auth_event(
                        "TOKEN_REJECTED", success=False, reason="guest token with elevated role"
                    )
                    raise AuthenticationError("Invalid token")
                return TenantContext(
                    role=Role.CUSTOMER,
                    restaurant_id=restaurant_id,
                    permissions=ROLE_PERMISSIONS[Role.CUSTOMER],
                )

            user = self._lookup.find_first(EntityKind.USER, where={"id": user_id, "is_active": True})
            if user is None:
                audit_auth_event("TOKEN_REJECTED", user_id=user_id, success=False, reason="user inactive")
                raise AuthenticationError("Invalid token")

            role = claimed_role
            if restaurant_id is not None:
                membership = self._active_membership(user_id, restaurant_id)
                if membership is None:
                    audit_auth_event(
                        "TOKEN_REJECTED",
                        user_id=user_id,
                        success=False,
                        reason="no active membership",
                        restaurant_id=restaurant_id,
                    )
                    raise AuthenticationError("Invalid token")
                role = Role.parse(membership.role) or Role.CUSTOMER

            return TenantContext(
                role=role,
                user_id=user_id,
                restaurant_id=restaurant_id,
                permissions=ROLE_PERMISSIONS[role],
                email=user.email,
            )
        finally:
            # Release the read transaction before request work starts
            self._db.rollback()

    def issue_token(self, user_id: str, restaurant_id: str | None = None) -> str:
        """
        Issue an access token for ``user_id``, scoped to ``restaurant_id`` or,
        when none is given, to the user's oldest active membership. Users
        without memberships get an unscoped CUSTOMER token. Records a LOGIN
        audit event.

        Raises:
            NotFoundError: unknown or inactive user
            AuthenticationError: no active membership in ``restaurant_id``
        """
        user = self._lookup.find_first(EntityKind.USER, where={"id": user_id, "is_active": True})
        if user is None:
            raise NotFoundError("User", user_id)

        role = Role.CUSTOMER
        if restaurant_id is None:
            # Default to the user's oldest active membership, if any
            for membership in self._lookup.find_many(
                EntityKind.MEMBERSHIP,
                where={"user_id": user_id, "is_active": True},
                order_by=("created_at",),
            ):
                if self._active_membership(user_id, membership.restaurant_id) is not None:
                    restaurant_id = membership.restaurant_id
                    break

        if restaurant_id is not None:
            membership = self._active_membership(user_id, restaurant_id)
            if membership is None:
                audit_auth_event(
                    "LOGIN",
                    user_id=user_id,
                    email=user.email,
                    success=False,
                    reason="no active membership",
                    restaurant_id=restaurant_id,
                )
                self._db.rollback()
                raise AuthenticationError("No active membership for this restaurant")
            role = Role.parse(membership.role) or Role.CUSTOMER

        token = sign_jwt(
            {
                "sub": user.id,
                "email": user.email,
                "restaurant_id": restaurant_id,
                "role": role.name,
                "permissions": list(ROLE_PERMISSIONS[role]),
            }
        )

        context = TenantContext(role=role, user_id=user.id, restaurant_id=restaurant_id)
        AuditRecorder(self._db, context, self._audit_context).log_custom_event(
            AuditAction.LOGIN,
            EntityKind.USER.value,
            record_id=user.id,
            metadata={"role": role.name},
        )
        safe_commit(self._db)

        audit_auth_event("LOGIN", user_id=user.id, email=user.email, restaurant_id=restaurant_id)
        logger.info("LOGIN_SUCCESS", email=mask_email(user.email), user_id=user.id, role=role.name)
        return token

    def issue_guest_token(self, restaurant_id: str) -> str:
        """CUSTOMER token without a subject, e.g. for a table's QR code."""
        restaurant = self._lookup.find_first(
            EntityKind.RESTAURANT, where={"id": restaurant_id, "is_active": True}
        )
        self._db.rollback()
        if restaurant is None:
            raise NotFoundError("Restaurant", restaurant_id)
        return sign_jwt(
            {
                "restaurant_id": restaurant_id,
                "role": Role.CUSTOMER.name,
                "permissions": list(ROLE_PERMISSIONS[Role.CUSTOMER]),
            }
        )
