"""Pytest configuration: in-memory SQLite database and a seeded community."""

import itertools
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# Set test database URL BEFORE any imports from snt_billing
# This ensures the SessionLocal and engine use SQLite instead of PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from snt_billing.models import (  # noqa: E402
    Base,
    Plot,
    PlotOwnership,
    Tenant,
    User,
    UserRole,
)
from snt_billing.services import enable_sqlite_transactions, get_db  # noqa: E402
from snt_billing.services.context import RequestContext  # noqa: E402
from snt_billing.services.repository import BillingRepository  # noqa: E402

DUE_DATE = datetime(2026, 3, 1, tzinfo=timezone.utc)


@dataclass
class Community:
    """One tenant with a chairman and residents who each own one plot."""

    tenant: Tenant
    chairman: User
    residents: list[User] = field(default_factory=list)
    plots: list[Plot] = field(default_factory=list)

    def ctx(self, user: User) -> RequestContext:
        return RequestContext(
            tenant_id=self.tenant.id,
            user_id=user.id,
            role=user.role,
            request_id=f"req-{user.id}",
        )

    @property
    def chairman_ctx(self) -> RequestContext:
        return self.ctx(self.chairman)

    def headers(self, user: User) -> dict[str, str]:
        return {
            "X-Tenant-Id": str(self.tenant.id),
            "X-User-Id": str(user.id),
            "X-User-Role": user.role.value,
        }

    @property
    def plot_ids(self) -> list[int]:
        return [plot.id for plot in self.plots]

    @property
    def resident_ids(self) -> list[int]:
        return [user.id for user in self.residents]


def seed_community(db, slug: str, residents: int = 3, chairman_plot: bool = False) -> Community:
    """Create a tenant, a chairman and residents with one primary plot each."""
    tenant = Tenant(name=f"СНТ {slug}", slug=slug)
    db.add(tenant)
    db.flush()

    chairman = User(
        tenant_id=tenant.id,
        phone=f"+7{slug[:3]}0000000",
        name="Председатель",
        role=UserRole.CHAIRMAN,
    )
    db.add(chairman)
    community = Community(tenant=tenant, chairman=chairman)

    for i in range(1, residents + 1):
        user = User(tenant_id=tenant.id, phone=f"+7{slug[:3]}000000{i}", name=f"Resident {i}")
        db.add(user)
        community.residents.append(user)
    db.flush()

    owners = list(community.residents)
    if chairman_plot:
        owners.append(chairman)
    for number, owner in enumerate(owners, start=1):
        plot = Plot(tenant_id=tenant.id, number=str(number), owner_id=owner.id)
        db.add(plot)
        db.flush()
        db.add(
            PlotOwnership(
                tenant_id=tenant.id,
                plot_id=plot.id,
                user_id=owner.id,
                is_primary=True,
                from_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )
        )
        community.plots.append(plot)

    db.commit()
    return community


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = enable_sqlite_transactions(
        create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create test database session."""
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def repo(db_session) -> BillingRepository:
    return BillingRepository(db_session)


@pytest.fixture
def community(db_session) -> Community:
    return seed_community(db_session, "sosenki")


@pytest.fixture
def other_community(db_session) -> Community:
    """A second tenant, for isolation checks."""
    return seed_community(db_session, "berezka", residents=1)


@pytest.fixture
def due_date() -> datetime:
    return DUE_DATE


@pytest.fixture
def later(due_date) -> datetime:
    return due_date + timedelta(days=30)


@pytest.fixture
def client(db_session):
    """Test client with the database dependency bound to the test session."""
    from snt_billing.api.app import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def add_member(db_session):
    """Create an extra user, optionally owning a (new or existing) primary plot."""
    counter = itertools.count(100)

    def _add_member(
        community: Community,
        name: str,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
        plot: Plot | None = None,
        new_plot: bool = True,
        primary: bool = True,
    ) -> User:
        index = next(counter)
        user = User(
            tenant_id=community.tenant.id,
            phone=f"+7999{community.tenant.id:03d}{index:04d}",
            name=name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()

        if plot is None and new_plot:
            plot = Plot(tenant_id=community.tenant.id, number=f"{index}", owner_id=user.id)
            db_session.add(plot)
            db_session.flush()
            community.plots.append(plot)
        if plot is not None:
            db_session.add(
                PlotOwnership(
                    tenant_id=community.tenant.id,
                    plot_id=plot.id,
                    user_id=user.id,
                    is_primary=primary,
                    from_date=datetime(2024, 6, 1, tzinfo=timezone.utc),
                )
            )
        db_session.commit()
        return user

    return _add_member
