"""
Pytest configuration and fixtures for backend tests.
"""

import os
import time

# Must be set before shared.config.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-length-for-hs256")

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import ROLE_PERMISSIONS, Role
from shared.infrastructure.db import get_db
from shared.security.auth import sign_jwt
from shared.security.rate_limit import limiter
from shared.security.tenant_context import TenantContext

from order_api.core.dependencies import get_redis
from order_api.main import app
from order_api.models import (
    Base,
    MenuItem,
    MenuVersion,
    Membership,
    Restaurant,
    Table,
    User,
)


limiter.enabled = False


def _enable_savepoints(engine, begin_sql: str = "BEGIN") -> None:
    """
    pysqlite issues its own BEGIN and breaks SAVEPOINT; take over transaction
    control so begin_nested() works as it does on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql(begin_sql)


# SQLite in-memory database for testing
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_enable_savepoints(engine)

TestingSessionLocal = sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
)


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema and session for each test.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def file_engine(tmp_path):
    """
    File-backed SQLite engine for multi-threaded tests. BEGIN IMMEDIATE takes
    the write lock up front so concurrent writers serialize instead of failing.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _enable_savepoints(file_engine, "BEGIN IMMEDIATE")
    Base.metadata.create_all(bind=file_engine)
    try:
        yield file_engine
    finally:
        file_engine.dispose()


@pytest.fixture
def file_sessionmaker(file_engine):
    return sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def redis_client():
    """In-process Redis double shared by everything in one test."""
    return fakeredis.FakeRedis(decode_responses=True)


def next_message(pubsub, timeout: float = 1.0):
    """First published message, skipping the subscribe confirmation."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        message = pubsub.get_message(timeout=0.05)
        if message is not None:
            return message
    return None


# =============================================================================
# Seed data
# =============================================================================


def seed_world(session) -> SimpleNamespace:
    """
    Two restaurants. "main" has a full staff ladder, tables and a menu with
    one active and one retired version; "other" has a manager and one item.
    """
    main = Restaurant(id="rest-main", name="Main Street Bistro", slug="main-street", currency="USD")
    other = Restaurant(id="rest-other", name="Harbor Grill", slug="harbor-grill", currency="USD")
    session.add_all([main, other])

    users = {}
    for role in Role:
        user = User(id=f"user-{role.name.lower()}", email=f"{role.name.lower()}@main.test")
        users[role] = user
        session.add(user)
    outsider = User(id="user-outsider", email="manager@harbor.test")
    inactive_user = User(id="user-inactive", email="gone@main.test", is_active=False)
    session.add_all([outsider, inactive_user])
    session.flush()

    memberships = {}
    for role, user in users.items():
        membership = Membership(
            id=f"member-{role.name.lower()}",
            user_id=user.id,
            restaurant_id=main.id,
            role=role.name,
        )
        memberships[role] = membership
        session.add(membership)
    session.add(Membership(id="member-outsider", user_id=outsider.id, restaurant_id=other.id, role="MANAGER"))
    session.add(Membership(id="member-inactive", user_id=inactive_user.id, restaurant_id=main.id, role="STAFF"))

    table = Table(id="table-1", restaurant_id=main.id, number=1, name="Window")
    closed_table = Table(id="table-closed", restaurant_id=main.id, number=2, is_active=False)
    other_table = Table(id="table-other", restaurant_id=other.id, number=1)

    menu = MenuVersion(
        id="menu-current", restaurant_id=main.id, name="Spring",
        published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    old_menu = MenuVersion(id="menu-old", restaurant_id=main.id, name="Winter", is_active=False)
    other_menu = MenuVersion(id="menu-other", restaurant_id=other.id, name="Harbor")
    session.add_all([table, closed_table, other_table, menu, old_menu, other_menu])
    session.flush()

    pizza = MenuItem(
        id="pizza-1", restaurant_id=main.id, menu_version_id=menu.id,
        name="Margherita", price=Decimal("12.99"), prep_time=15,
    )
    salad = MenuItem(
        id="salad-1", restaurant_id=main.id, menu_version_id=menu.id,
        name="House Salad", price=Decimal("8.50"), prep_time=5,
    )
    sold_out = MenuItem(
        id="soup-1", restaurant_id=main.id, menu_version_id=menu.id,
        name="Soup of the Day", price=Decimal("6.00"), status="UNAVAILABLE",
    )
    retired = MenuItem(
        id="stew-1", restaurant_id=main.id, menu_version_id=old_menu.id,
        name="Winter Stew", price=Decimal("14.00"),
    )
    foreign = MenuItem(
        id="fish-1", restaurant_id=other.id, menu_version_id=other_menu.id,
        name="Fish and Chips", price=Decimal("15.00"),
    )
    session.add_all([pizza, salad, sold_out, retired, foreign])
    session.commit()

    return SimpleNamespace(
        main=main,
        other=other,
        users=users,
        outsider=outsider,
        inactive_user=inactive_user,
        memberships=memberships,
        table=table,
        closed_table=closed_table,
        other_table=other_table,
        pizza=pizza,
        salad=salad,
        sold_out=sold_out,
        retired=retired,
        foreign=foreign,
    )


@pytest.fixture
def world(db_session):
    return seed_world(db_session)


@pytest.fixture
def context_for(world):
    """
    Build the TenantContext a member of "main" would resolve to.

    Usage:
        ctx = context_for(Role.STAFF)
    """

    def _context(role: Role, restaurant_id: str | None = None) -> TenantContext:
        user = world.users[role]
        return TenantContext(
            role=role,
            user_id=user.id,
            restaurant_id=restaurant_id or world.main.id,
            permissions=ROLE_PERMISSIONS[role],
            email=user.email,
        )

    return _context


@pytest.fixture
def guest_context(world):
    return TenantContext(
        role=Role.CUSTOMER,
        restaurant_id=world.main.id,
        permissions=ROLE_PERMISSIONS[Role.CUSTOMER],
    )


@pytest.fixture
def token_for(world):
    """Signed bearer header for a user of "main" (or any explicit claims)."""

    def _headers(member: Role | None = None, **claims) -> dict[str, str]:
        if member is not None:
            claims = {
                "sub": world.users[member].id,
                "email": world.users[member].email,
                "restaurant_id": world.main.id,
                "role": member.name,
                **claims,
            }
        return {"Authorization": f"Bearer {sign_jwt(claims)}"}

    return _headers


# =============================================================================
# HTTP client
# =============================================================================


@pytest.fixture(scope="function")
def client(db_session, redis_client):
    """
    Test client sharing the test session and the fake Redis.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
