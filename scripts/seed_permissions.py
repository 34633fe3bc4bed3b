"""
Seed script to populate default permissions and roles.

Run this script after database initialization to create:
- Default permissions, including the ("all", "all") wildcard
- Default roles; the administrator role is a system role holding the wildcard

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio

from admin_console.core.database.engine import AsyncSessionLocal, init_db
from admin_console.features.permissions.seed import DEFAULT_ROLES, seed_permissions, seed_roles
from admin_console.utils import get_logger


log = get_logger(__name__)


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            permissions_map = await seed_permissions(db)
            await seed_roles(db, permissions_map)
        except Exception:
            log.error("Error seeding permissions", exc_info=True)
            await db.rollback()
            raise

    log.info("Permission seeding completed successfully!")
    log.info("Default roles:")
    for role_name, role_config in DEFAULT_ROLES.items():
        log.info("  - %s: %s", role_name, role_config["description"])


if __name__ == "__main__":
    asyncio.run(main())
