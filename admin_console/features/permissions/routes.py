"""
Permission management API routes.

Provides endpoints for listing permissions, managing roles and their
permission sets, checking user permissions and asking the route guard for a
decision.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core.database.engine import get_db
from admin_console.features.permissions.dependencies import (
    get_evaluator,
    get_permission_store,
    get_role_registry,
    require_permissions,
)
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.exceptions import ValidationError
from admin_console.features.permissions.guard import RouteGuard
from admin_console.features.permissions.models import Role
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.schemas import (
    GuardRequest,
    GuardResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
)
from admin_console.features.permissions.store import PermissionStore
from admin_console.features.users.dependencies import get_optional_principal, get_principal_cache
from admin_console.features.users.principal import Principal, PrincipalCache
from admin_console.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def role_with_permissions(registry: RoleRegistry, role: Role) -> RoleWithPermissions:
    permissions = await registry.store.list_permissions_for_role(role.id)
    user_count = await registry.count_role_users(role.id)
    return RoleWithPermissions(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[PermissionResponse.model_validate(p) for p in permissions],
        user_count=user_count,
    )


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    store: PermissionStore = Depends(get_permission_store),
    principal: Principal = Depends(require_permissions("roles.view"))
):
    """List all permissions ordered by resource and action."""
    return await store.list_permissions()


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    store: PermissionStore = Depends(get_permission_store),
    principal: Principal = Depends(require_permissions("roles.manage"))
):
    """Create a new permission."""
    db_permission = await store.create_permission(
        permission.resource, permission.action, permission.description
    )
    await db.commit()
    log.info("Audit: user=%s created permission %s", principal.user_id, db_permission.key)
    return db_permission


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    store: PermissionStore = Depends(get_permission_store),
    principal: Principal = Depends(require_permissions("roles.view"))
):
    """Get a specific permission by ID."""
    return await store.get_permission(permission_id)


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    registry: RoleRegistry = Depends(get_role_registry),
    principal: Principal = Depends(require_permissions("roles.view"))
):
    """List all roles ordered by name."""
    return await registry.list_roles()


@router.post("/roles", response_model=RoleWithPermissions, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
    cache: PrincipalCache = Depends(get_principal_cache),
    principal: Principal = Depends(require_permissions("roles.manage"))
):
    """Create a new role with its permissions."""
    db_role = await registry.create_role(
        role.name,
        description=role.description,
        is_system_role=role.is_system_role,
        permission_ids=role.permission_ids,
    )
    response = await role_with_permissions(registry, db_role)
    await db.commit()
    cache.clear()
    log.info("Audit: user=%s created role %s", principal.user_id, db_role.id)
    return response


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    registry: RoleRegistry = Depends(get_role_registry),
    principal: Principal = Depends(require_permissions("roles.view"))
):
    """Get a specific role with its permissions."""
    role = await registry.get_role(role_id)
    return await role_with_permissions(registry, role)


@router.put("/roles/{role_id}", response_model=RoleWithPermissions)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
    cache: PrincipalCache = Depends(get_principal_cache),
    principal: Principal = Depends(require_permissions("roles.manage"))
):
    """Update a role. System roles keep their name."""
    db_role = await registry.update_role(
        role_id,
        name=role_update.name,
        description=role_update.description,
        permission_ids=role_update.permission_ids,
    )
    response = await role_with_permissions(registry, db_role)
    await db.commit()
    cache.clear()
    log.info("Audit: user=%s updated role %s", principal.user_id, role_id)
    return response


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
    cache: PrincipalCache = Depends(get_principal_cache),
    principal: Principal = Depends(require_permissions("roles.manage"))
):
    """Delete a role. Fails for system roles and roles still assigned to users."""
    await registry.delete_role(role_id)
    await db.commit()
    cache.clear()
    log.info("Audit: user=%s deleted role %s", principal.user_id, role_id)
    return None


@router.get("/roles/{role_id}/permissions", response_model=List[PermissionResponse])
async def list_role_permissions(
    role_id: str,
    registry: RoleRegistry = Depends(get_role_registry),
    principal: Principal = Depends(require_permissions("roles.view"))
):
    """List the permissions attached to a role."""
    role = await registry.get_role(role_id)
    return await registry.store.list_permissions_for_role(role.id)


@router.put("/roles/{role_id}/permissions", response_model=List[PermissionResponse])
async def replace_role_permissions(
    role_id: str,
    update: RolePermissionsUpdate,
    db: AsyncSession = Depends(get_db),
    store: PermissionStore = Depends(get_permission_store),
    cache: PrincipalCache = Depends(get_principal_cache),
    principal: Principal = Depends(require_permissions("roles.manage"))
):
    """Replace a role's permission set."""
    permissions = await store.replace_permissions_for_role(role_id, update.permission_ids)
    await db.commit()
    cache.clear()
    log.info("Audit: user=%s replaced permissions of role %s", principal.user_id, role_id)
    return permissions


# ============================================================================
# Authorization Routes
# ============================================================================

@router.post("/authorization/check", response_model=PermissionCheckResponse)
async def check_permissions(
    check: PermissionCheckRequest,
    evaluator: AuthorizationEvaluator = Depends(get_evaluator),
    principal: Principal = Depends(require_permissions("users.view"))
):
    """Check whether a user holds every listed capability."""
    decision = await evaluator.check_all(check.user_id, check.permissions)
    return PermissionCheckResponse(
        has_permission=decision.allowed,
        denied=str(decision.denied) if decision.denied else None,
        reason=decision.reason,
    )


@router.post("/authorization/guard", response_model=GuardResponse)
async def guard_decision(
    guard: GuardRequest,
    principal: Optional[Principal] = Depends(get_optional_principal)
):
    """Route guard decision for the current principal."""
    decision = RouteGuard(guard.permissions).decide(principal)
    reason = None
    if isinstance(decision.error, ValidationError):
        reason = decision.error.message
    return GuardResponse(
        state=decision.state.value,
        redirect_to=decision.redirect_path,
        missing=str(decision.missing) if decision.missing else None,
        reason=reason,
    )
