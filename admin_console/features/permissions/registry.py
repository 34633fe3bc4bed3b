"""
Role lifecycle management.

The registry owns the protection rules for roles: system roles keep their
name and cannot be deleted, and no role can be deleted while users are
assigned to it. Permission sets are always written through
``PermissionStore.replace_permissions_for_role``.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.features.permissions.exceptions import (
    ConflictError,
    ImmutableFieldError,
    InvalidRoleError,
    NotFound,
    RoleInUseError,
    SystemRoleProtectedError,
    ValidationError,
)
from admin_console.features.permissions.models import Role
from admin_console.features.permissions.store import PermissionStore, store_errors
from admin_console.features.users.models import User
from admin_console.utils import get_logger


log = get_logger(__name__)


def clean_role_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Role name is required")
    return name


class RoleRegistry:
    """CRUD over roles plus user role assignment."""

    def __init__(self, db: AsyncSession, store: Optional[PermissionStore] = None):
        self.db = db
        self.store = store or PermissionStore(db)

    async def list_roles(self) -> List[Role]:
        with store_errors("list roles"):
            result = await self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def get_role(self, role_id: str) -> Role:
        with store_errors("get role"):
            role = await self.db.get(Role, role_id)
        if role is None:
            raise NotFound("Role not found")
        return role

    async def count_role_users(self, role_id: str) -> int:
        """Number of users currently assigned to the role."""
        with store_errors("count role users"):
            result = await self.db.execute(
                select(func.count()).select_from(User).where(User.role_id == role_id)
            )
        return result.scalar_one()

    async def _ensure_name_available(self, name: str, exclude_role_id: Optional[str] = None) -> None:
        # Role names are unique ignoring case
        stmt = select(Role.id).where(func.lower(Role.name) == name.lower())
        if exclude_role_id is not None:
            stmt = stmt.where(Role.id != exclude_role_id)
        with store_errors("check role name"):
            result = await self.db.execute(stmt)
        if result.first() is not None:
            raise ConflictError("Role with this name already exists")

    async def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        is_system_role: bool = False,
        permission_ids: Iterable[str] = ()
    ) -> Role:
        """
        Create a role and attach its permissions.

        Raises:
            ValidationError: If the name is empty
            ConflictError: If a role with the name already exists
            NotFound: If any permission id is unknown
        """
        name = clean_role_name(name)
        await self._ensure_name_available(name)

        role = Role(name=name, description=description, is_system_role=is_system_role)
        self.db.add(role)
        try:
            with store_errors("create role"):
                await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent create of the same name
            await self.db.rollback()
            raise ConflictError("Role with this name already exists")

        await self.store.replace_permissions_for_role(role.id, permission_ids)
        await self.db.refresh(role)

        log.info("Created role %s (%s, system=%s)", role.name, role.id, role.is_system_role)
        return role

    async def update_role(
        self,
        role_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permission_ids: Optional[Iterable[str]] = None
    ) -> Role:
        """
        Update a role. ``None`` leaves the corresponding field unchanged.

        A system role keeps its name: passing its current name is accepted,
        passing any other name raises ImmutableFieldError. Its description and
        permissions can still change.
        """
        role = await self.get_role(role_id)

        if name is not None:
            name = clean_role_name(name)
            if name != role.name:
                if role.is_system_role:
                    raise ImmutableFieldError("name", "System role names cannot be changed")
                await self._ensure_name_available(name, exclude_role_id=role.id)
                role.name = name

        if description is not None:
            role.description = description

        if permission_ids is not None:
            await self.store.replace_permissions_for_role(role.id, permission_ids)

        role.updated_at = datetime.now(timezone.utc)
        try:
            with store_errors("update role"):
                await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Role with this name already exists")
        await self.db.refresh(role)

        log.info("Updated role %s (%s)", role.name, role.id)
        return role

    async def delete_role(self, role_id: str) -> None:
        """
        Delete a role and its permission links.

        Raises:
            NotFound: If the role does not exist
            SystemRoleProtectedError: If the role is a system role
            RoleInUseError: If users are still assigned to the role
        """
        role = await self.get_role(role_id)

        if role.is_system_role:
            raise SystemRoleProtectedError("Cannot delete system roles")

        user_count = await self.count_role_users(role.id)
        if user_count:
            raise RoleInUseError(user_count)

        await self.store.replace_permissions_for_role(role.id, [])
        role_name = role.name
        await self.db.delete(role)
        try:
            with store_errors("delete role"):
                await self.db.flush()
        except IntegrityError:
            # A user was assigned after the count above
            await self.db.rollback()
            raise RoleInUseError(await self.count_role_users(role_id))

        log.info("Deleted role %s (%s)", role_name, role_id)

    async def assign_user_role(self, user_id: str, role_id: str) -> User:
        """
        Set the user's role.

        Raises:
            InvalidRoleError: If the role does not exist
            NotFound: If the user does not exist
        """
        with store_errors("assign role"):
            role = await self.db.get(Role, role_id) if role_id else None
            if role is None:
                raise InvalidRoleError(f"Invalid role ID: {role_id}")

            user = await self.db.get(User, user_id)
            if user is None:
                raise NotFound("User not found")

            previous_role_id = user.role_id
            user.role_id = role.id
            user.updated_at = datetime.now(timezone.utc)
            await self.db.flush()
        await self.db.refresh(user)

        log.info("Assigned role %s to user %s (was %s)", role.name, user.id, previous_role_id)
        return user
