"""
Tests for the access control evaluator and PermissionContext.
"""

import pytest

from shared.config.constants import Role
from shared.security.tenant_context import TenantContext
from shared.utils.exceptions import PermissionDeniedError

from order_api.services.permissions import (
    ACCESS_RULES,
    EntityKind,
    Operation,
    PermissionContext,
    evaluate,
    minimum_role,
)


def ctx(role):
    return TenantContext(role=role, user_id="u-1", restaurant_id="r-1")


class TestRoleOrdering:
    def test_roles_are_totally_ordered(self):
        assert Role.CUSTOMER < Role.STAFF < Role.MANAGER < Role.ADMIN < Role.OWNER

    @pytest.mark.parametrize("value,expected", [
        ("manager", Role.MANAGER),
        ("OWNER", Role.OWNER),
        (2, Role.STAFF),
        ("chef", None),
        (42, None),
        (None, None),
    ])
    def test_parse(self, value, expected):
        assert Role.parse(value) is expected


class TestEvaluate:
    """Decisions taken from the static rule table."""

    def test_customer_can_create_order(self):
        assert evaluate(ctx(Role.CUSTOMER), EntityKind.ORDER, Operation.CREATE).allowed

    def test_customer_cannot_update_order(self):
        decision = evaluate(ctx(Role.CUSTOMER), EntityKind.ORDER, Operation.UPDATE)
        assert not decision
        assert "requires STAFF" in decision.reason

    def test_order_delete_requires_manager(self):
        assert not evaluate(ctx(Role.STAFF), EntityKind.ORDER, Operation.DELETE)
        assert evaluate(ctx(Role.MANAGER), EntityKind.ORDER, Operation.DELETE)

    def test_restaurant_update_requires_admin(self):
        assert not evaluate(ctx(Role.MANAGER), EntityKind.RESTAURANT, Operation.UPDATE)
        assert evaluate(ctx(Role.ADMIN), EntityKind.RESTAURANT, Operation.UPDATE)

    def test_higher_roles_inherit_lower_permissions(self):
        for (entity, operation), required in ACCESS_RULES.items():
            for role in Role:
                assert evaluate(ctx(role), entity, operation).allowed is (role >= required)

    def test_pairs_without_rule_are_denied(self):
        # Order lines and audit entries are never edited
        for role in Role:
            assert not evaluate(ctx(role), EntityKind.ORDER_ITEM, Operation.UPDATE)
            assert not evaluate(ctx(role), EntityKind.AUDIT_LOG, Operation.DELETE)
        assert minimum_role(EntityKind.AUDIT_LOG, Operation.UPDATE) is None

    def test_missing_role_is_denied(self):
        decision = evaluate(TenantContext(role=None), EntityKind.MENU_ITEM, Operation.READ)
        assert not decision
        assert decision.reason == "no role"

    def test_system_context_is_always_allowed(self):
        system = TenantContext.system()
        assert evaluate(system, EntityKind.AUDIT_LOG, Operation.DELETE)
        assert evaluate(system, EntityKind.RESTAURANT, Operation.CREATE)

    def test_evaluate_is_pure(self):
        context = ctx(Role.STAFF)
        first = evaluate(context, EntityKind.MEMBERSHIP, Operation.LIST)
        second = evaluate(context, EntityKind.MEMBERSHIP, Operation.LIST)
        assert first == second


class TestPermissionContext:
    def test_require_raises_permission_denied(self):
        perms = PermissionContext(ctx(Role.STAFF))
        with pytest.raises(PermissionDeniedError) as exc_info:
            perms.require(Operation.DELETE, EntityKind.ORDER)
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "PERMISSION_DENIED"

    def test_require_passes_when_allowed(self):
        PermissionContext(ctx(Role.MANAGER)).require(Operation.DELETE, EntityKind.ORDER)

    def test_can(self):
        perms = PermissionContext(ctx(Role.ADMIN))
        assert perms.can(Operation.CREATE, EntityKind.MEMBERSHIP)
        assert not perms.can(Operation.DELETE, EntityKind.RESTAURANT)

    def test_require_role(self):
        with pytest.raises(PermissionDeniedError):
            PermissionContext(ctx(Role.ADMIN)).require_role(Role.OWNER)
        PermissionContext(ctx(Role.OWNER)).require_role(Role.OWNER)
        PermissionContext(TenantContext.system()).require_role(Role.OWNER)


class TestTenantContextPermissions:
    def test_wildcard_grants_everything(self):
        context = TenantContext(role=Role.ADMIN, permissions=("*",))
        assert context.has_permission("orders:delete")

    def test_namespace_wildcard(self):
        context = TenantContext(role=Role.MANAGER, permissions=("orders:*",))
        assert context.has_permission("orders:update")
        assert not context.has_permission("menu:update")

    def test_guest(self):
        assert TenantContext(role=Role.CUSTOMER, restaurant_id="r-1").is_guest
        assert not TenantContext.system().is_guest
