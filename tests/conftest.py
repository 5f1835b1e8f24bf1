"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; keep the app off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tablequeue.core.rate_limit import limiter
from tablequeue.core.rbac import GlobalRole, OrgScope, StaffRole
from tablequeue.core.security import create_access_token, get_password_hash, token_claims_for_user
from tablequeue.db.base import Base
from tablequeue.db.session import enable_sqlite_foreign_keys, get_db
from tablequeue.main import app
# Import all models to ensure they're registered with Base.metadata
from tablequeue.models import (
    MenuCategory,
    MenuItem,
    Organization,
    OrganizationType,
    Queue,
    QueueStatus,
    Table,
    TableStatus,
    User,
)
from tablequeue.services.notification_bus import NotificationBus

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with foreign keys enforced."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def events(bus: NotificationBus) -> list:
    """Every event published on ``bus``, in delivery order."""
    received = []
    bus.subscribe(received.append)
    return received


@pytest.fixture(scope="function")
def client(db_session: Session, bus: NotificationBus) -> Generator[TestClient, None, None]:
    """Create a test client with database and bus overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    original_bus = app.state.bus
    app.state.bus = bus
    # Disable rate limiting during tests to avoid flaky failures
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.state.bus = original_bus
    app.dependency_overrides.clear()


# ============== Tenants and staff ==============

def _make_org(db: Session, name: str, slug: str,
              org_type: OrganizationType = OrganizationType.BOTH) -> Organization:
    org = Organization(name=name, slug=slug, type=org_type, email=f"hello@{slug}.test", is_active=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def organization(db_session: Session) -> Organization:
    return _make_org(db_session, "Bella Cucina", "bella-cucina")


@pytest.fixture
def other_organization(db_session: Session) -> Organization:
    return _make_org(db_session, "Harbor Clinic", "harbor-clinic")


@pytest.fixture
def scope(organization: Organization) -> OrgScope:
    return OrgScope(organization_id=organization.id)


@pytest.fixture
def make_user(db_session: Session):
    """Factory for staff accounts; password is always ``secret123``."""
    def _make(username: str, organization: Organization = None,
              role: StaffRole = StaffRole.WAITER,
              global_role: GlobalRole = GlobalRole.ORG_STAFF) -> User:
        user = User(
            organization_id=organization.id if organization else None,
            username=username,
            email=f"{username}@example.com",
            password_hash=get_password_hash("secret123"),
            role=role,
            global_role=global_role,
            name=username.title(),
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def admin_user(make_user, organization) -> User:
    return make_user("owner", organization, StaffRole.ADMIN, GlobalRole.ORG_ADMIN)


@pytest.fixture
def waiter_user(make_user, organization) -> User:
    return make_user("waiter", organization, StaffRole.WAITER)


@pytest.fixture
def kitchen_user(make_user, organization) -> User:
    return make_user("chef", organization, StaffRole.KITCHEN)


@pytest.fixture
def super_admin(make_user) -> User:
    return make_user("platform", None, StaffRole.ADMIN, GlobalRole.SUPER_ADMIN)


def headers_for(user: User) -> dict:
    """Bearer headers carrying the user's claims."""
    token = create_access_token(data=token_claims_for_user(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(admin_user: User) -> dict:
    """Get authentication headers for the organization admin."""
    return headers_for(admin_user)


@pytest.fixture
def waiter_headers(waiter_user: User) -> dict:
    return headers_for(waiter_user)


@pytest.fixture
def kitchen_headers(kitchen_user: User) -> dict:
    return headers_for(kitchen_user)


@pytest.fixture
def super_admin_headers(super_admin: User) -> dict:
    return headers_for(super_admin)


# ============== Floor, menu and queues ==============

@pytest.fixture
def table(db_session: Session, organization: Organization) -> Table:
    table = Table(
        organization_id=organization.id,
        number=1,
        capacity=4,
        status=TableStatus.FREE,
        qr_code="table-1-test-token",
    )
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def menu(db_session: Session, organization: Organization) -> dict:
    """A small menu: burger 5.00, soda 3.50, an unavailable special."""
    burger = MenuItem(
        organization_id=organization.id,
        name="Classic Burger",
        category=MenuCategory.MAINS,
        price=Decimal("5.00"),
        available=True,
    )
    soda = MenuItem(
        organization_id=organization.id,
        name="Lemon Soda",
        category=MenuCategory.DRINKS,
        price=Decimal("3.50"),
        available=True,
    )
    special = MenuItem(
        organization_id=organization.id,
        name="Seasonal Special",
        category=MenuCategory.MAINS,
        price=Decimal("20.00"),
        available=False,
    )
    db_session.add_all([burger, soda, special])
    db_session.commit()
    return {"burger": burger, "soda": soda, "special": special}


@pytest.fixture
def make_queue(db_session: Session, organization: Organization):
    """Factory for queues with a fixed QR token."""
    def _make(name: str = "Walk-ins", avg_service_time: int = 5,
              status: QueueStatus = QueueStatus.ACTIVE, qr_code: str = "queue-test-token",
              org: Organization = None) -> Queue:
        queue = Queue(
            organization_id=(org or organization).id,
            name=name,
            avg_service_time=avg_service_time,
            status=status,
            current_ticket=0,
            next_ticket=1,
            qr_code=qr_code,
        )
        db_session.add(queue)
        db_session.commit()
        db_session.refresh(queue)
        return queue
    return _make


@pytest.fixture
def queue(make_queue) -> Queue:
    return make_queue()
