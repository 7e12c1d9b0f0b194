"""
Tests for membership management and restaurant deactivation.
"""

import pytest
from sqlalchemy import func, select

from shared.config.constants import Role
from shared.utils.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from shared.utils.schemas import CreateOrderRequest

from order_api.models import AuditLogEntry, Membership, MenuItem, Order, Restaurant, Table, User
from order_api.services.domain import MembershipService, OrderService, RestaurantService


@pytest.fixture
def newcomer(db_session, world):
    user = User(id="user-new", email="new@main.test")
    db_session.add(user)
    db_session.commit()
    return user


class TestInvite:
    def test_admin_invites_staff(self, db_session, context_for, newcomer, world):
        membership = MembershipService(db_session, context_for(Role.ADMIN)).invite(newcomer.id, "staff")

        assert membership.restaurant_id == world.main.id
        assert membership.role == "STAFF"
        assert membership.invited_by_id == world.users[Role.ADMIN].id
        assert membership.is_active is True

    def test_invite_is_audited(self, db_session, context_for, newcomer, world):
        MembershipService(db_session, context_for(Role.ADMIN)).invite(newcomer.id, Role.MANAGER)

        entry = db_session.scalars(select(AuditLogEntry)).one()
        assert entry.action == "CREATE"
        assert entry.table_name == "Membership"
        assert entry.after_state["role"] == "MANAGER"

    def test_manager_cannot_invite(self, db_session, context_for, newcomer):
        with pytest.raises(PermissionDeniedError):
            MembershipService(db_session, context_for(Role.MANAGER)).invite(newcomer.id, Role.STAFF)

    def test_cannot_grant_above_own_role(self, db_session, context_for, newcomer):
        with pytest.raises(PermissionDeniedError) as exc_info:
            MembershipService(db_session, context_for(Role.ADMIN)).invite(newcomer.id, Role.OWNER)
        assert exc_info.value.reason == "cannot grant a role above your own"

    def test_unknown_role(self, db_session, context_for, newcomer):
        with pytest.raises(ValidationError):
            MembershipService(db_session, context_for(Role.OWNER)).invite(newcomer.id, "sous-chef")

    def test_unknown_user(self, db_session, context_for, world):
        with pytest.raises(NotFoundError):
            MembershipService(db_session, context_for(Role.OWNER)).invite("nobody", Role.STAFF)

    def test_existing_member_conflicts(self, db_session, context_for, world):
        with pytest.raises(ConflictError):
            MembershipService(db_session, context_for(Role.OWNER)).invite(world.users[Role.STAFF].id, Role.MANAGER)

    def test_member_of_other_restaurant_can_join(self, db_session, context_for, world):
        membership = MembershipService(db_session, context_for(Role.OWNER)).invite(world.outsider.id, Role.STAFF)

        assert membership.restaurant_id == world.main.id
        count = db_session.scalar(
            select(func.count()).select_from(Membership).where(Membership.user_id == world.outsider.id)
        )
        assert count == 2

    def test_inactive_membership_is_reactivated(self, db_session, context_for, world):
        service = MembershipService(db_session, context_for(Role.OWNER))
        staff_id = world.users[Role.STAFF].id
        service.deactivate(world.memberships[Role.STAFF].id)

        membership = service.invite(staff_id, Role.MANAGER)

        assert membership.id == world.memberships[Role.STAFF].id
        assert membership.is_active is True
        assert membership.deleted_at is None
        assert membership.role == "MANAGER"
        count = db_session.scalar(
            select(func.count()).select_from(Membership).where(Membership.user_id == staff_id)
        )
        assert count == 1


class TestDeactivate:
    def test_soft_deactivates(self, db_session, context_for, world):
        MembershipService(db_session, context_for(Role.ADMIN)).deactivate(world.memberships[Role.STAFF].id)

        membership = db_session.get(Membership, world.memberships[Role.STAFF].id)
        assert membership.is_active is False
        assert membership.deleted_at is not None

    def test_cannot_remove_higher_role(self, db_session, context_for, world):
        with pytest.raises(PermissionDeniedError):
            MembershipService(db_session, context_for(Role.ADMIN)).deactivate(world.memberships[Role.OWNER].id)

    def test_already_inactive_is_not_found(self, db_session, context_for, world):
        service = MembershipService(db_session, context_for(Role.OWNER))
        service.deactivate(world.memberships[Role.STAFF].id)

        with pytest.raises(NotFoundError):
            service.deactivate(world.memberships[Role.STAFF].id)

    def test_foreign_membership_is_not_found(self, db_session, context_for, world):
        with pytest.raises(NotFoundError):
            MembershipService(db_session, context_for(Role.OWNER)).deactivate("member-outsider")


class TestRestaurantDeactivation:
    def test_owner_cascades_to_children(self, db_session, context_for, redis_client, world):
        request = CreateOrderRequest(items=[{"menu_item_id": world.pizza.id, "quantity": 1}])
        order = OrderService(db_session, context_for(Role.CUSTOMER), redis_client=redis_client).create_order(
            request
        ).data
        audit_before = db_session.scalar(select(func.count()).select_from(AuditLogEntry))

        affected = RestaurantService(db_session, context_for(Role.OWNER)).deactivate()

        assert affected == {
            "MenuItem": 4,
            "MenuVersion": 1,
            "Table": 1,
            "Membership": 6,
            "Restaurant": 1,
        }
        assert db_session.get(Restaurant, world.main.id).is_active is False
        main_items = db_session.scalars(select(MenuItem).where(MenuItem.restaurant_id == world.main.id)).all()
        assert not any(item.is_active for item in main_items)
        assert db_session.get(Table, world.table.id).is_active is False

        # History is kept
        stored = db_session.get(Order, order.id)
        assert stored.status == "PENDING"
        assert db_session.scalar(select(func.count()).select_from(AuditLogEntry)) > audit_before

        # Other tenants are untouched
        assert db_session.get(Restaurant, world.other.id).is_active is True
        assert db_session.get(MenuItem, world.foreign.id).is_active is True

    def test_admin_cannot_deactivate(self, db_session, context_for, world):
        with pytest.raises(PermissionDeniedError):
            RestaurantService(db_session, context_for(Role.ADMIN)).deactivate()

        assert db_session.get(Restaurant, world.main.id).is_active is True
