"""
Durable access to permissions and role-permission associations.

Every call re-reads the database; nothing here caches.
"""
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import select, delete, insert
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.features.permissions.capabilities import Capability
from admin_console.features.permissions.exceptions import ConflictError, NotFound, StoreUnavailable
from admin_console.features.permissions.models import Permission, Role, role_permissions
from admin_console.utils import get_logger


log = get_logger(__name__)

# Errors meaning the store itself could not be reached or answer in time
UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate connectivity failures inside the block into StoreUnavailable."""
    try:
        yield
    except UNAVAILABLE_ERRORS as e:
        log.warning("Store unavailable during %s: %s", operation, e)
        raise StoreUnavailable(f"Store unavailable during {operation}") from e


class PermissionStore:
    """Reads and writes permissions and the role_permissions association."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_permissions(self) -> List[Permission]:
        """All permissions ordered by (resource, action)."""
        with store_errors("list permissions"):
            result = await self.db.execute(
                select(Permission).order_by(Permission.resource, Permission.action)
            )
        return list(result.scalars().all())

    async def get_permission(self, permission_id: str) -> Permission:
        with store_errors("get permission"):
            permission = await self.db.get(Permission, permission_id)
        if permission is None:
            raise NotFound("Permission not found")
        return permission

    async def create_permission(
        self,
        resource: str,
        action: str,
        description: Optional[str] = None
    ) -> Permission:
        """
        Create a permission. Permissions are normally seeded at setup time.

        Raises:
            ValidationError: If resource or action is empty
            ConflictError: If the (resource, action) pair already exists
        """
        capability = Capability.of(resource, action)
        permission = Permission(resource=capability.resource, action=capability.action, description=description)

        with store_errors("check permission"):
            result = await self.db.execute(
                select(Permission.id).where(
                    Permission.resource == permission.resource,
                    Permission.action == permission.action,
                )
            )
        if result.first() is not None:
            raise ConflictError(f"Permission '{permission.key}' already exists")

        self.db.add(permission)
        try:
            with store_errors("create permission"):
                await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Permission '{permission.key}' already exists") from e

        await self.db.refresh(permission)
        log.info("Created permission %s (%s)", permission.key, permission.id)
        return permission

    async def list_permissions_for_role(self, role_id: str) -> List[Permission]:
        """The role's permissions ordered by (resource, action); empty if it has none."""
        with store_errors("list role permissions"):
            result = await self.db.execute(
                select(Permission)
                .join(role_permissions, role_permissions.c.permission_id == Permission.id)
                .where(role_permissions.c.role_id == role_id)
                .order_by(Permission.resource, Permission.action)
            )
        return list(result.scalars().all())

    async def role_has_capability(self, role_id: str, resource: str, action: str) -> bool:
        """True if the role is linked to the exact (resource, action) permission."""
        with store_errors("check role permission"):
            result = await self.db.execute(
                select(role_permissions.c.permission_id)
                .join(Permission, Permission.id == role_permissions.c.permission_id)
                .where(
                    role_permissions.c.role_id == role_id,
                    Permission.resource == resource,
                    Permission.action == action,
                )
                .limit(1)
            )
        return result.first() is not None

    async def replace_permissions_for_role(
        self,
        role_id: str,
        permission_ids: Iterable[str]
    ) -> List[Permission]:
        """
        Replace the role's permission set with ``permission_ids``.

        The delete and the inserts run in the session's current transaction.
        Unknown ids are rejected before anything is removed, and on a store
        failure the session is rolled back, so the role keeps its previous
        set rather than ending up with a partial or empty one.

        Returns:
            The role's permissions after the replacement

        Raises:
            NotFound: If the role or any of the permissions does not exist
            StoreUnavailable: If the store fails mid-replacement
        """
        wanted = list(dict.fromkeys(permission_ids))

        with store_errors("replace role permissions"):
            role = await self.db.get(Role, role_id)
            if role is None:
                raise NotFound("Role not found")

            if wanted:
                result = await self.db.execute(select(Permission.id).where(Permission.id.in_(wanted)))
                found = set(result.scalars().all())
                missing = [permission_id for permission_id in wanted if permission_id not in found]
                if missing:
                    raise NotFound(f"Permission not found: {', '.join(missing)}")

        try:
            await self.db.execute(
                delete(role_permissions).where(role_permissions.c.role_id == role_id)
            )
            if wanted:
                await self.db.execute(
                    insert(role_permissions),
                    [{"role_id": role_id, "permission_id": permission_id} for permission_id in wanted],
                )
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.warning("Replacing permissions for role %s failed, rolled back: %s", role_id, e)
            raise StoreUnavailable("Failed to replace role permissions") from e

        log.debug("Role %s now has %d permissions", role_id, len(wanted))
        return await self.list_permissions_for_role(role_id)
