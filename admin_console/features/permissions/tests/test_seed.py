import pytest
from sqlalchemy import func, select

from admin_console.core import config
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.models import Permission, Role
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.seed import DEFAULT_PERMISSIONS, DEFAULT_ROLES, seed_permissions, seed_roles
from admin_console.features.users.models import User


@pytest.mark.asyncio
async def test_seed_creates_catalogue_and_roles(db) -> None:
    permissions_map = await seed_permissions(db)
    created = await seed_roles(db, permissions_map)

    assert len(permissions_map) == len(DEFAULT_PERMISSIONS)
    assert sorted(role.name for role in created) == sorted(DEFAULT_ROLES)

    admin_role = next(role for role in created if role.name == config.ADMIN_ROLE_NAME)
    assert admin_role.is_system_role


@pytest.mark.asyncio
async def test_seed_is_idempotent(db) -> None:
    await seed_roles(db, await seed_permissions(db))

    again = await seed_roles(db, await seed_permissions(db))

    assert again == []
    assert await db.scalar(select(func.count()).select_from(Permission)) == len(DEFAULT_PERMISSIONS)
    assert await db.scalar(select(func.count()).select_from(Role)) == len(DEFAULT_ROLES)


@pytest.mark.asyncio
async def test_seeded_roles_evaluate_as_configured(db) -> None:
    await seed_roles(db, await seed_permissions(db))
    roles = {role.name: role for role in await RoleRegistry(db).list_roles()}

    moderator = User(appwrite_id="appwrite-mo", email="mo@example.com", name="Mo", role_id=roles["MODERATOR"].id)
    admin = User(appwrite_id="appwrite-ad", email="ad@example.com", name="Ad", role_id=roles[config.ADMIN_ROLE_NAME].id)
    db.add_all([moderator, admin])
    await db.commit()

    evaluator = AuthorizationEvaluator(db)
    assert await evaluator.has_permission(moderator.id, "products", "moderate")
    assert not await evaluator.has_permission(moderator.id, "roles", "manage")
    assert await evaluator.has_permission(admin.id, "roles", "manage")
