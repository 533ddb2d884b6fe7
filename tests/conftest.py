"""Pytest configuration and shared fixtures."""
import os

# Must be set before civic_portal reads its settings
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing-only-0123456789"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import timedelta
from typing import AsyncGenerator, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from civic_portal.core.auth import create_access_token, hash_password
from civic_portal.core.database import Base, get_db
from civic_portal.models import (
    AvailabilityStatus,
    Bill,
    BillType,
    ComplaintCategory,
    Department,
    StaffProfile,
    SupervisorLevel,
    SupervisorProfile,
    User,
    UserRole,
    Ward,
)
from civic_portal.utils.time import today
from main import app

API = "/api/v1"
PASSWORD = "Passw0rd!"

COMPLAINT_DESCRIPTION = (
    "The streetlight in front of the ward office has been off for a week "
    "and the lane is completely dark at night."
)


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging test data; commit to make rows visible to the API."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with one session per request."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                if session.in_transaction():
                    await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def make_user(db_session) -> Callable:
    """Factory creating a committed user with the shared test password."""
    async def _make(email: str, role: UserRole = UserRole.CITIZEN, **kwargs) -> User:
        user = User(
            email=email,
            hashed_password=hash_password(PASSWORD),
            full_name=kwargs.pop("full_name", email.split("@")[0].title()),
            role=role,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


# -----------------
# REFERENCE DATA
# -----------------

@pytest.fixture
async def ward(db_session) -> Ward:
    ward = Ward(ward_number=4, name="Ward 4 - Old Town")
    db_session.add(ward)
    await db_session.commit()
    return ward


@pytest.fixture
async def other_ward(db_session) -> Ward:
    ward = Ward(ward_number=9, name="Ward 9 - Riverside")
    db_session.add(ward)
    await db_session.commit()
    return ward


@pytest.fixture
async def department(db_session) -> Department:
    department = Department(name="Roads and Infrastructure", code="ROADS")
    db_session.add(department)
    await db_session.commit()
    return department


@pytest.fixture
async def category(db_session, department) -> ComplaintCategory:
    category = ComplaintCategory(name="Street lighting", default_department_id=department.id)
    db_session.add(category)
    await db_session.commit()
    return category


# -----------------
# USERS
# -----------------

@pytest.fixture
async def citizen(make_user, ward) -> User:
    return await make_user("sita@example.com", UserRole.CITIZEN, ward_id=ward.id, phone="9812345678")


@pytest.fixture
async def other_citizen(make_user, ward) -> User:
    return await make_user("ram@example.com", UserRole.CITIZEN, ward_id=ward.id)


@pytest.fixture
async def staff_user(make_user, db_session, ward, department) -> User:
    user = await make_user("engineer@civic.local", UserRole.STAFF, full_name="Field Engineer")
    db_session.add(StaffProfile(
        user_id=user.id,
        staff_code="ROADS-0001",
        department_id=department.id,
        ward_id=ward.id,
        availability_status=AvailabilityStatus.AVAILABLE,
        current_workload=0,
        max_concurrent_assignments=10,
    ))
    await db_session.commit()
    return user


@pytest.fixture
async def supervisor(make_user, db_session, ward) -> User:
    user = await make_user("supervisor@civic.local", UserRole.SUPERVISOR, full_name="Ward Supervisor")
    db_session.add(SupervisorProfile(
        user_id=user.id,
        supervisor_level=SupervisorLevel.WARD,
        assigned_wards=[ward.id],
        assigned_departments=[],
        can_generate_reports=True,
    ))
    await db_session.commit()
    return user


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin@civic.local", UserRole.ADMIN, full_name="Portal Admin")


@pytest.fixture
def citizen_headers(citizen) -> Dict[str, str]:
    return auth_headers(citizen)


@pytest.fixture
def staff_headers(staff_user) -> Dict[str, str]:
    return auth_headers(staff_user)


@pytest.fixture
def supervisor_headers(supervisor) -> Dict[str, str]:
    return auth_headers(supervisor)


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return auth_headers(admin)


# -----------------
# DOMAIN OBJECTS
# -----------------

@pytest.fixture
async def complaint(client, citizen_headers, category, ward) -> Dict:
    """Complaint filed through the API by ``citizen``."""
    response = await client.post(
        f"{API}/complaints",
        json={
            "title": "Streetlight not working near the ward office",
            "description": COMPLAINT_DESCRIPTION,
            "category_id": category.id,
            "ward_id": ward.id,
            "priority": "high",
        },
        headers=citizen_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def bill(db_session, citizen, department) -> Bill:
    """Pending water bill due in two weeks."""
    bill = Bill(
        bill_number="BILL-TEST-0001",
        citizen_id=citizen.id,
        department_id=department.id,
        bill_type=BillType.WATER,
        base_amount=1000.0,
        tax_amount=130.0,
        total_amount=1130.0,
        due_date=today() + timedelta(days=14),
    )
    db_session.add(bill)
    await db_session.commit()
    return bill


@pytest.fixture
async def overdue_bill(db_session, citizen) -> Bill:
    """Pending property-tax bill ten days past due."""
    bill = Bill(
        bill_number="BILL-TEST-0002",
        citizen_id=citizen.id,
        bill_type=BillType.PROPERTY_TAX,
        base_amount=5000.0,
        tax_amount=0.0,
        total_amount=5000.0,
        due_date=today() - timedelta(days=10),
    )
    db_session.add(bill)
    await db_session.commit()
    return bill


@pytest.fixture
def headers_for() -> Callable[[User], Dict[str, str]]:
    """Bearer headers for an arbitrary user."""
    return auth_headers
