"""
FastAPI dependencies for authentication and principal resolution.
"""
from typing import Annotated, Optional
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core.database.engine import get_db
from admin_console.features.users.auth import fetch_appwrite_account, session_user_id
from admin_console.features.users.models import User
from admin_console.features.users.principal import Principal, PrincipalCache, PrincipalResolver


# Missing credentials are not an error here: the route guard reports them
# as an unauthenticated decision.
security = HTTPBearer(auto_error=False)


async def get_session_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Optional[User]:
    """
    Get the user behind the bearer token, or None without a token.

    This dependency:
    1. Extracts the Appwrite JWT from the Authorization header
    2. Looks up the profile, creating it (without a role) on first sight
    3. Updates the last_login_at timestamp
    """
    if credentials is None:
        return None

    appwrite_id = session_user_id(credentials.credentials)

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        account = await fetch_appwrite_account(appwrite_id)
        user = User(
            appwrite_id=appwrite_id,
            email=account["email"],
            name=account["name"],
        )
        db.add(user)

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def get_principal_cache(request: Request) -> PrincipalCache:
    """The application's principal snapshot cache."""
    return request.app.state.principal_cache


async def get_optional_principal(
    user: Annotated[Optional[User], Depends(get_session_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[PrincipalCache, Depends(get_principal_cache)]
) -> Optional[Principal]:
    """The current principal, or None when the request carries no session."""
    if user is None:
        return None
    return await PrincipalResolver(db, cache=cache).resolve_current_principal(user)


async def get_current_principal(
    user: Annotated[Optional[User], Depends(get_session_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[PrincipalCache, Depends(get_principal_cache)]
) -> Principal:
    """
    The current principal; raises NoActiveSession (401) without a session.

    Usage:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    return await PrincipalResolver(db, cache=cache).resolve_current_principal(user)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
