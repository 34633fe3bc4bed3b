"""
Default permission catalogue and built-in roles.

Used by ``scripts/seed_permissions.py``. Seeding is idempotent: existing
permissions and roles are left untouched.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core import config
from admin_console.features.permissions.capabilities import ADMIN_CAPABILITIES, WILDCARD_CAPABILITY
from admin_console.features.permissions.models import Permission, Role
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.store import PermissionStore
from admin_console.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Superuser
    ("all", "all", "Every permission"),

    # User management
    ("users", "view", "View users"),
    ("users", "create", "Create users"),
    ("users", "edit", "Edit users and their roles"),
    ("users", "delete", "Delete users"),

    # Product catalogue
    ("products", "view", "View products"),
    ("products", "create", "Create products"),
    ("products", "edit", "Edit products"),
    ("products", "delete", "Delete products"),
    ("products", "moderate", "Approve or reject product listings"),

    # Dealers
    ("dealers", "view", "View dealers"),
    ("dealers", "create", "Create dealers"),
    ("dealers", "edit", "Edit dealers"),
    ("dealers", "approve", "Approve dealer verification"),

    # Roles and permissions
    ("roles", "view", "View roles and permissions"),
    ("roles", "manage", "Create, edit and delete roles"),

    # Analytics
    ("analytics", "view", "View platform analytics"),

    # Support
    ("support", "view", "View support tickets"),
    ("support", "resolve", "Resolve support tickets"),
]


DEFAULT_ROLES = {
    config.ADMIN_ROLE_NAME: {
        "description": "Platform administrator with all permissions",
        "is_system_role": True,
        "permissions": [str(WILDCARD_CAPABILITY)] + [str(c) for c in ADMIN_CAPABILITIES],
    },
    "MODERATOR": {
        "description": "Reviews product listings and dealer applications",
        "is_system_role": False,
        "permissions": [
            "products.view", "products.moderate",
            "dealers.view", "dealers.approve",
        ],
    },
    "SUPPORT": {
        "description": "Customer support agent",
        "is_system_role": False,
        "permissions": ["support.view", "support.resolve", "users.view"],
    },
    "ANALYST": {
        "description": "Read-only access to analytics",
        "is_system_role": False,
        "permissions": ["analytics.view", "products.view", "dealers.view"],
    },
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping "resource.action" keys to Permission objects
    """
    log.info("Creating default permissions...")
    store = PermissionStore(db)
    permissions_map = {permission.key: permission for permission in await store.list_permissions()}

    for resource, action, description in DEFAULT_PERMISSIONS:
        key = f"{resource}.{action}"
        if key in permissions_map:
            log.debug("Permission '%s' already exists, skipping", key)
            continue
        permissions_map[key] = await store.create_permission(resource, action, description)

    await db.commit()
    log.info("Permission catalogue has %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]) -> list[Role]:
    """
    Create default roles and assign permissions.

    Args:
        db: Database session
        permissions_map: Dictionary of "resource.action" -> Permission object
    """
    log.info("Creating default roles...")
    registry = RoleRegistry(db)
    created = []

    for role_name, role_config in DEFAULT_ROLES.items():
        result = await db.execute(select(Role.id).where(Role.name == role_name))
        if result.first() is not None:
            log.debug("Role '%s' already exists, skipping", role_name)
            continue

        permission_ids = []
        for key in role_config["permissions"]:
            if key in permissions_map:
                permission_ids.append(permissions_map[key].id)
            else:
                log.warning("Permission '%s' not found for role '%s'", key, role_name)

        role = await registry.create_role(
            role_name,
            description=role_config["description"],
            is_system_role=role_config["is_system_role"],
            permission_ids=permission_ids,
        )
        created.append(role)

    await db.commit()
    log.info("Created %d default roles", len(created))
    return created
