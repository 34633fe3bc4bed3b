"""
Permission and Role models for role-based access control.

A permission is a (resource, action) capability. Roles group permissions
through the role_permissions association table, and each user profile
references at most one role.
"""
from sqlalchemy import String, ForeignKey, Table, Column, Text, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from admin_console.core.database.base import Base, TimestampMixin, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    Permission model defining a specific action on a resource.

    Examples:
    - resource="users", action="view"
    - resource="products", action="moderate"
    - resource="all", action="all" (wildcard, grants everything)

    Resource and action are stored lowercase so permission identity does not
    depend on how a presentation layer capitalises them.
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    resource: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @validates("resource", "action")
    def normalize_identifier(self, _key: str, value: str) -> str:
        return value.strip().lower()

    @property
    def key(self) -> str:
        return f"{self.resource}.{self.action}"

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, resource={self.resource}, action={self.action})>"


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions.

    System roles (such as the built-in ADMIN role) keep their name and cannot
    be deleted; their description and permission set remain editable.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, system={self.is_system_role})>"
