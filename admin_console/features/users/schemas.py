"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: str
    email: EmailStr
    name: str
    role_id: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AssignRole(BaseModel):
    """Schema for assigning a role to a user."""
    role_id: str = Field(..., description="Role ID")


class PrincipalResponse(BaseModel):
    """The current user together with their role and permissions."""
    user_id: str
    email: str
    name: str
    role_id: str | None = None
    role_name: str | None = None
    permissions: list[str] = []
    admin_bypass: bool = False


class UserStatusUpdate(BaseModel):
    """Schema for activating or deactivating a user."""
    is_active: bool


class BulkUserStatusUpdate(UserStatusUpdate):
    """Schema for activating or deactivating several users at once."""
    user_ids: list[str] = Field(..., min_length=1, description="User IDs")
