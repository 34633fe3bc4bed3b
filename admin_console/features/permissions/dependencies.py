"""
FastAPI dependencies for RBAC services and route protection.
"""
from typing import Annotated, Optional, Union

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core.database.engine import get_db
from admin_console.features.permissions.capabilities import Capability
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.guard import GuardState, RouteGuard
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.store import PermissionStore
from admin_console.features.users.dependencies import get_optional_principal
from admin_console.features.users.principal import Principal


def get_permission_store(db: Annotated[AsyncSession, Depends(get_db)]) -> PermissionStore:
    return PermissionStore(db)


def get_role_registry(db: Annotated[AsyncSession, Depends(get_db)]) -> RoleRegistry:
    return RoleRegistry(db)


def get_evaluator(db: Annotated[AsyncSession, Depends(get_db)]) -> AuthorizationEvaluator:
    return AuthorizationEvaluator(db)


def require_permissions(*capabilities: Union[str, Capability]):
    """
    FastAPI dependency requiring every listed capability.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            principal: Principal = Depends(require_permissions("roles.manage"))
        ):
            # Principal holds roles.manage
            ...

    Returns:
        Dependency function that returns the current principal if authorized

    Raises:
        HTTPException: 401 without a session, 403 if a capability is missing
    """
    async def permission_dependency(
        principal: Annotated[Optional[Principal], Depends(get_optional_principal)]
    ) -> Principal:
        decision = RouteGuard(capabilities).decide(principal)

        if decision.state is GuardState.UNAUTHENTICATED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not decision.authorized:
            detail = f"Permission denied: {decision.missing}" if decision.missing else "Permission denied"
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

        return principal

    return permission_dependency
