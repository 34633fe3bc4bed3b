"""
Current principal resolution.

A principal is a read-mostly snapshot of a user's identity, role and
permission set. Snapshots are not refreshed automatically: callers re-resolve
(or invalidate the cache) after changing roles or permissions.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core import config
from admin_console.features.permissions.capabilities import (
    ADMIN_CAPABILITIES,
    Capability,
    WILDCARD_CAPABILITY,
    parse_capabilities,
)
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.exceptions import NoActiveSession
from admin_console.features.permissions.models import Role
from admin_console.features.permissions.store import store_errors
from admin_console.features.users.models import User
from admin_console.utils import get_logger


log = get_logger(__name__)


def is_admin_role_name(role_name: Optional[str], admin_role_name: Optional[str] = None) -> bool:
    if not role_name:
        return False
    return role_name.casefold() == (admin_role_name or config.ADMIN_ROLE_NAME).casefold()


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    name: str
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    permissions: frozenset = field(default_factory=frozenset)
    # Set when the administrator bypass applies to this principal
    admin_bypass: bool = False

    def grants(self, capability: Capability) -> bool:
        return WILDCARD_CAPABILITY in self.permissions or capability in self.permissions

    def first_missing(self, capabilities: Iterable[Union[str, Capability]]) -> Optional[Capability]:
        """
        First required capability this snapshot does not grant, or None.

        Raises:
            ValidationError: If a capability string is malformed
        """
        for capability in parse_capabilities(capabilities):
            if not self.grants(capability):
                return capability
        return None

    def has_all_permissions(self, capabilities: Iterable[Union[str, Capability]]) -> bool:
        return self.first_missing(capabilities) is None

    @property
    def permission_keys(self) -> list[str]:
        return sorted(str(capability) for capability in self.permissions)


class PrincipalCache:
    """
    Optional in-process cache of principal snapshots keyed by user id.

    Entries live until ``invalidate`` or ``clear`` is called, or until the
    cache is full and the least recently used entry is dropped. Every
    invalidation bumps ``generation``; a snapshot loaded under an older
    generation is not stored.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = config.PRINCIPAL_CACHE_SIZE if max_size is None else max_size
        self.generation = 0
        self._principals: OrderedDict[str, Principal] = OrderedDict()

    def get(self, user_id: str) -> Optional[Principal]:
        principal = self._principals.get(user_id)
        if principal is not None:
            self._principals.move_to_end(user_id)
        return principal

    def put(self, principal: Principal, generation: Optional[int] = None) -> bool:
        """Store the snapshot unless the cache was invalidated since ``generation``."""
        if generation is not None and generation != self.generation:
            log.debug("Dropping principal %s loaded before an invalidation", principal.user_id)
            return False
        if self.max_size <= 0:
            return False

        self._principals[principal.user_id] = principal
        self._principals.move_to_end(principal.user_id)
        while len(self._principals) > self.max_size:
            self._principals.popitem(last=False)
        return True

    def invalidate(self, user_id: str) -> None:
        self.generation += 1
        self._principals.pop(user_id, None)

    def clear(self) -> None:
        self.generation += 1
        self._principals.clear()

    def __len__(self) -> int:
        return len(self._principals)


class PrincipalResolver:
    """Builds the current principal for an authenticated user."""

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[PrincipalCache] = None,
        admin_bypass: Optional[bool] = None,
        admin_role_name: Optional[str] = None
    ):
        self.db = db
        self.cache = cache
        self.evaluator = AuthorizationEvaluator(db)
        self.admin_bypass = config.ADMIN_BYPASS_ENABLED if admin_bypass is None else admin_bypass
        self.admin_role_name = admin_role_name or config.ADMIN_ROLE_NAME

    def is_admin_role(self, role: Optional[Role]) -> bool:
        """The built-in administrator role: a system role with the configured name."""
        return role is not None and role.is_system_role and is_admin_role_name(role.name, self.admin_role_name)

    async def resolve_current_principal(self, user: Optional[User]) -> Principal:
        """
        Resolve the principal for the session's user.

        When the administrator bypass is enabled, a user holding the built-in
        administrator role receives the fixed administrator capability list
        without consulting the permission store. A non-system role sharing
        the administrator name gets no bypass.

        Raises:
            NoActiveSession: If there is no authenticated user
        """
        if user is None:
            raise NoActiveSession("No active session")

        generation = None
        if self.cache is not None:
            cached = self.cache.get(user.id)
            if cached is not None:
                return cached
            generation = self.cache.generation

        role = None
        if user.role_id is not None:
            with store_errors("load role"):
                role = await self.db.get(Role, user.role_id)
        role_name = role.name if role is not None else None

        bypass = self.admin_bypass and self.is_admin_role(role)
        if bypass:
            permissions = frozenset(ADMIN_CAPABILITIES)
        else:
            stored = await self.evaluator.get_user_permissions(user.id)
            permissions = frozenset(Capability(p.resource, p.action) for p in stored)

        principal = Principal(
            user_id=user.id,
            email=user.email,
            name=user.name,
            role_id=role.id if role is not None else None,
            role_name=role_name,
            permissions=permissions,
            admin_bypass=bypass,
        )
        log.debug(
            "Resolved principal %s role=%s permissions=%d bypass=%s",
            user.id, role_name, len(permissions), bypass
        )

        if self.cache is not None:
            self.cache.put(principal, generation=generation)
        return principal
