"""Shared pytest fixtures: a throwaway SQLite database per test and an HTTP client."""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from admin_console.core.database.base import Base
from admin_console.core.database.engine import enable_sqlite_foreign_keys, get_db
from admin_console.features.permissions.models import Permission, Role
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.store import PermissionStore
from admin_console.features.users.models import User
from admin_console.features.users.principal import PrincipalCache


TOKEN_SECRET = "test-secret-not-checked-by-the-service-0123456789"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_permission(db: AsyncSession):
    async def _make(resource: str, action: str, description: Optional[str] = None) -> Permission:
        permission = await PermissionStore(db).create_permission(resource, action, description)
        await db.commit()
        return permission
    return _make


@pytest.fixture
def make_role(db: AsyncSession):
    async def _make(
        name: str,
        permissions: tuple[Permission, ...] = (),
        is_system_role: bool = False,
        description: Optional[str] = None,
    ) -> Role:
        role = await RoleRegistry(db).create_role(
            name,
            description=description,
            is_system_role=is_system_role,
            permission_ids=[p.id for p in permissions],
        )
        await db.commit()
        return role
    return _make


@pytest.fixture
def make_user(db: AsyncSession):
    async def _make(name: str, role: Optional[Role] = None) -> User:
        slug = name.lower().replace(" ", "-")
        user = User(
            appwrite_id=f"appwrite-{slug}",
            email=f"{slug}@example.com",
            name=name,
            role_id=role.id if role is not None else None,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user
    return _make


def auth_headers(user: User) -> dict[str, str]:
    token = jwt.encode(
        {"userId": user.appwrite_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        TOKEN_SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
async def rbac_identity(make_permission, make_role, make_user) -> dict[str, Any]:
    """
    A small seeded world:
    - ADMIN system role holding the wildcard, assigned to "Ada Admin"
    - SUPPORT role holding support.view, assigned to "Sam Support"
    - "Nora Norole" with no role
    """
    wildcard = await make_permission("all", "all", "Every permission")
    permissions = {"all.all": wildcard}
    for key in ("support.view", "support.resolve", "products.moderate", "users.view", "users.edit",
                "roles.view", "roles.manage"):
        resource, action = key.split(".")
        permissions[key] = await make_permission(resource, action)

    admin_role = await make_role("ADMIN", (wildcard,), is_system_role=True, description="Administrators")
    support_role = await make_role("SUPPORT", (permissions["support.view"],))

    return {
        "permissions": permissions,
        "admin_role": admin_role,
        "support_role": support_role,
        "admin": await make_user("Ada Admin", admin_role),
        "support": await make_user("Sam Support", support_role),
        "norole": await make_user("Nora Norole"),
    }


@pytest.fixture
async def async_client(session_factory):
    from admin_console.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.principal_cache = PrincipalCache()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
