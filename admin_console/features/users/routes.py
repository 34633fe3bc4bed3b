"""
User feature routes.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional
from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core.database.engine import get_db
from admin_console.features.permissions.dependencies import get_evaluator, get_role_registry, require_permissions
from admin_console.features.permissions.evaluator import AuthorizationEvaluator
from admin_console.features.permissions.exceptions import NotFound, ValidationError
from admin_console.features.permissions.registry import RoleRegistry
from admin_console.features.permissions.schemas import PermissionResponse
from admin_console.features.users.dependencies import get_current_principal, get_principal_cache
from admin_console.features.users.models import User
from admin_console.features.users.principal import Principal, PrincipalCache
from admin_console.features.users.schemas import (
    AssignRole,
    BulkUserStatusUpdate,
    PrincipalResponse,
    UserResponse,
    UserStatusUpdate,
)
from admin_console.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


@router.get("/me", response_model=PrincipalResponse)
async def get_current_user_permissions(
    principal: Annotated[Principal, Depends(get_current_principal)]
):
    """Get the current user with their role and permissions."""
    return PrincipalResponse(
        user_id=principal.user_id,
        email=principal.email,
        name=principal.name,
        role_id=principal.role_id,
        role_name=principal.role_name,
        permissions=principal.permission_keys,
        admin_bypass=principal.admin_bypass,
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permissions("users.view"))]
):
    """Get a user profile by ID."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@router.get("/{user_id}/permissions", response_model=list[PermissionResponse])
async def get_user_permissions(
    user_id: str,
    evaluator: Annotated[AuthorizationEvaluator, Depends(get_evaluator)],
    principal: Annotated[Principal, Depends(require_permissions("users.view"))]
):
    """List the permissions a user holds through their role."""
    return await evaluator.get_user_permissions(user_id)


@router.put("/{user_id}/role", response_model=UserResponse)
async def assign_user_role(
    user_id: str,
    assignment: AssignRole,
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[RoleRegistry, Depends(get_role_registry)],
    cache: Annotated[PrincipalCache, Depends(get_principal_cache)],
    principal: Annotated[Principal, Depends(require_permissions("users.edit"))]
):
    """Assign a role to a user."""
    user = await registry.assign_user_role(user_id, assignment.role_id)
    await db.commit()
    cache.invalidate(user.id)
    log.info("Audit: user=%s assigned role %s to user %s", principal.user_id, assignment.role_id, user.id)
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(require_permissions("users.view"))],
    role_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 50
):
    """List users, optionally filtered by role, status or a name/email search."""
    stmt = select(User)
    if role_id is not None:
        stmt = stmt.where(User.role_id == role_id)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    result = await db.execute(stmt.order_by(User.name, User.id).offset(skip).limit(limit))
    return result.scalars().all()


async def set_user_status(db: AsyncSession, principal: Principal, users: list[User], is_active: bool) -> None:
    # Prevent self-deactivation
    if any(user.id == principal.user_id for user in users):
        raise ValidationError("Cannot change your own status")

    now = datetime.now(timezone.utc)
    for user in users:
        user.is_active = is_active
        user.updated_at = now
    await db.flush()


@router.put("/status", response_model=list[UserResponse])
async def bulk_update_user_status(
    update: BulkUserStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[PrincipalCache, Depends(get_principal_cache)],
    principal: Annotated[Principal, Depends(require_permissions("users.edit"))]
):
    """Activate or deactivate several users at once."""
    user_ids = list(dict.fromkeys(update.user_ids))
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {user.id: user for user in result.scalars().all()}
    missing = [user_id for user_id in user_ids if user_id not in users]
    if missing:
        raise NotFound(f"User not found: {', '.join(missing)}")

    ordered = [users[user_id] for user_id in user_ids]
    await set_user_status(db, principal, ordered, update.is_active)
    await db.commit()
    for user_id in user_ids:
        cache.invalidate(user_id)
    log.info("Audit: user=%s set is_active=%s on %d users", principal.user_id, update.is_active, len(user_ids))
    return ordered


@router.put("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: str,
    update: UserStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[PrincipalCache, Depends(get_principal_cache)],
    principal: Annotated[Principal, Depends(require_permissions("users.edit"))]
):
    """Activate or deactivate a user."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    await set_user_status(db, principal, [user], update.is_active)
    await db.commit()
    cache.invalidate(user.id)
    log.info("Audit: user=%s set is_active=%s on user %s", principal.user_id, update.is_active, user.id)
    return user
