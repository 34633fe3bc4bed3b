"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, permission checks and
route guard decisions.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    resource: str = Field(..., min_length=1, max_length=100, description="Resource (e.g., 'users', 'products')")
    action: str = Field(..., min_length=1, max_length=50, description="Action (e.g., 'view', 'edit', 'moderate')")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('resource', 'action')
    @classmethod
    def identifier_format(cls, v: str) -> str:
        """Lowercase identifiers made of letters, digits and underscores."""
        v = v.strip().lower()
        if not v.replace('_', '').isalnum():
            raise ValueError('Must contain only alphanumeric characters and underscores')
        return v


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    key: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., max_length=50, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    is_system_role: bool = False
    permission_ids: List[str] = Field(default_factory=list, description="Permissions to attach")


class RoleUpdate(BaseModel):
    """Schema for updating a role; omitted fields stay unchanged."""
    name: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    permission_ids: Optional[List[str]] = None


class RolePermissionsUpdate(BaseModel):
    """Schema for replacing a role's permission set."""
    permission_ids: List[str]


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    is_system_role: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []
    user_count: int = 0


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking whether a user holds every listed capability."""
    user_id: str = Field(..., description="User ID")
    permissions: List[str] = Field(default_factory=list, description="Capabilities as 'resource.action'")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    denied: Optional[str] = None
    reason: Optional[str] = None


class GuardRequest(BaseModel):
    """Schema for asking the route guard about the current principal."""
    permissions: List[str] = Field(default_factory=list, description="Capabilities as 'resource.action'")


class GuardResponse(BaseModel):
    """Schema for a route guard decision."""
    state: str
    redirect_to: Optional[str] = None
    missing: Optional[str] = None
    reason: Optional[str] = None
