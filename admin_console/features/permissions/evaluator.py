"""
Permission checks for users.

Checks fail closed: when the store cannot answer, the check is denied and
the error travels on the returned decision instead of being raised.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.features.permissions.capabilities import (
    Capability,
    WILDCARD_CAPABILITY,
    parse_capabilities,
)
from admin_console.features.permissions.exceptions import StoreUnavailable
from admin_console.features.permissions.models import Permission
from admin_console.features.permissions.store import PermissionStore, store_errors
from admin_console.features.users.models import User
from admin_console.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of a permission check."""
    allowed: bool
    denied: Optional[Capability] = None
    error: Optional[Exception] = None

    def __bool__(self) -> bool:
        return self.allowed

    @property
    def reason(self) -> Optional[str]:
        if self.allowed:
            return None
        if self.error is not None:
            return f"Could not verify {self.denied}: {self.error}"
        return f"Missing permission {self.denied}"


ALLOWED = AccessDecision(allowed=True)


class AuthorizationEvaluator:
    """Decides whether a user holds a capability through their role."""

    def __init__(self, db: AsyncSession, store: Optional[PermissionStore] = None):
        self.db = db
        self.store = store or PermissionStore(db)

    async def _role_id_for(self, user_id: str) -> Optional[str]:
        with store_errors("resolve user role"):
            result = await self.db.execute(select(User.role_id).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def check(self, user_id: str, resource: str, action: str) -> AccessDecision:
        """
        Check one capability.

        1. A user without a role is denied.
        2. A role holding the wildcard ("all", "all") is allowed.
        3. Otherwise the exact (resource, action) pair must be linked.

        Raises:
            ValidationError: If resource or action is empty
        """
        capability = Capability.of(resource, action)

        try:
            role_id = await self._role_id_for(user_id)
            if role_id is None:
                log.debug("User %s has no role - denied %s", user_id, capability)
                return AccessDecision(allowed=False, denied=capability)

            if await self.store.role_has_capability(role_id, *WILDCARD_CAPABILITY):
                log.debug("User %s holds the wildcard permission - granted %s", user_id, capability)
                return ALLOWED

            if await self.store.role_has_capability(role_id, capability.resource, capability.action):
                log.debug("User %s granted %s via role %s", user_id, capability, role_id)
                return ALLOWED
        except (StoreUnavailable, SQLAlchemyError) as e:
            log.warning("Permission check %s for user %s failed closed: %s", capability, user_id, e)
            return AccessDecision(allowed=False, denied=capability, error=e)

        log.debug("User %s denied %s", user_id, capability)
        return AccessDecision(allowed=False, denied=capability)

    async def has_permission(self, user_id: str, resource: str, action: str) -> bool:
        return (await self.check(user_id, resource, action)).allowed

    async def check_all(
        self,
        user_id: str,
        capabilities: Iterable[Union[str, Capability]]
    ) -> AccessDecision:
        """
        Check every capability in order, stopping at the first denial.

        All capability strings are parsed before any check runs, so a
        malformed entry raises ValidationError instead of reading as a deny.
        An empty list is allowed.
        """
        required = parse_capabilities(capabilities)
        for capability in required:
            decision = await self.check(user_id, capability.resource, capability.action)
            if not decision.allowed:
                return decision
        return ALLOWED

    async def has_all_permissions(
        self,
        user_id: str,
        capabilities: Iterable[Union[str, Capability]]
    ) -> bool:
        return (await self.check_all(user_id, capabilities)).allowed

    async def get_user_permissions(self, user_id: str) -> List[Permission]:
        """All permissions of the user's role; empty when the user has no role."""
        role_id = await self._role_id_for(user_id)
        if role_id is None:
            return []
        return await self.store.list_permissions_for_role(role_id)
