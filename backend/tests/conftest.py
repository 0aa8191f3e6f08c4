"""
Pytest configuration and fixtures for backend tests.

Provides the in-memory database, a seeded admin and a read-only user with
ready-made bearer tokens, reference data, and an async HTTP client whose
requests share the test session.
"""
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.audit.change_tracking import register_change_tracking
from backoffice.core.database import Base, get_db
from backoffice.core.permissions import ALL_PERMISSIONS, Permission as PermissionCode
from backoffice.core.rate_limit import rate_limiter
from backoffice.core.security import get_password_hash
from backoffice.main import app
from backoffice.models import Country, Currency, Permission, Role, RolePermission, User, UserRole
from backoffice.services.auth import build_access_token


# In-memory SQLite; StaticPool keeps every connection on the same database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_PASSWORD = "AdminPass123!"
VIEWER_PASSWORD = "ViewerPass123!"

VIEWER_PERMISSIONS = [PermissionCode.CLIENTS_READ.value, PermissionCode.ACCOUNTS_READ.value]


@dataclass
class SeededUser:
    id: uuid.UUID
    username: str
    password: str
    token: str

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class ReferenceData:
    us_id: uuid.UUID
    de_id: uuid.UUID
    usd_id: uuid.UUID


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session with change tracking enabled."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    register_change_tracking(async_session)

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def seeded_users(db_session: AsyncSession) -> dict[str, SeededUser]:
    """
    Seed the permission catalogue, an Admin role holding every permission,
    a Viewer role, and one user for each.
    """
    permissions = [
        Permission(code=info.code, name=info.name, group=info.group)
        for info in ALL_PERMISSIONS
    ]
    db_session.add_all(permissions)

    admin_role = Role(name="Admin", description="Full access", is_system=True, created_by="seed")
    admin_role.role_permissions = [RolePermission(permission=p) for p in permissions]
    viewer_role = Role(name="Viewer", description="Read-only access", created_by="seed")
    viewer_role.role_permissions = [
        RolePermission(permission=p) for p in permissions if p.code in VIEWER_PERMISSIONS
    ]
    db_session.add_all([admin_role, viewer_role])

    admin = User(
        username="admin",
        email="admin@example.com",
        password_hash=get_password_hash(ADMIN_PASSWORD),
        full_name="System Administrator",
        is_active=True,
        created_by="seed",
    )
    admin.user_roles = [UserRole(role=admin_role)]
    viewer = User(
        username="viewer",
        email="viewer@example.com",
        password_hash=get_password_hash(VIEWER_PASSWORD),
        full_name="Read Only",
        is_active=True,
        created_by="seed",
    )
    viewer.user_roles = [UserRole(role=viewer_role)]
    db_session.add_all([admin, viewer])
    await db_session.commit()

    all_codes = sorted(info.code for info in ALL_PERMISSIONS)
    return {
        "admin": SeededUser(admin.id, "admin", ADMIN_PASSWORD, build_access_token(admin, all_codes)),
        "viewer": SeededUser(viewer.id, "viewer", VIEWER_PASSWORD, build_access_token(viewer, VIEWER_PERMISSIONS)),
    }


@pytest_asyncio.fixture(scope="function")
async def admin_user(seeded_users) -> SeededUser:
    return seeded_users["admin"]


@pytest_asyncio.fixture(scope="function")
async def viewer_user(seeded_users) -> SeededUser:
    return seeded_users["viewer"]


@pytest_asyncio.fixture(scope="function")
async def auth_headers(admin_user: SeededUser) -> dict:
    """Bearer headers for the admin user."""
    return admin_user.headers


@pytest_asyncio.fixture(scope="function")
async def reference_data(db_session: AsyncSession) -> ReferenceData:
    us = Country(iso2="US", iso3="USA", name="United States")
    de = Country(iso2="DE", iso3="DEU", name="Germany")
    usd = Currency(code="USD", name="US Dollar", symbol="$")
    db_session.add_all([us, de, usd])
    await db_session.commit()
    return ReferenceData(us_id=us.id, de_id=de.id, usd_id=usd.id)


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    seeded_users,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""

    async def override_get_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
    rate_limiter.reset()
