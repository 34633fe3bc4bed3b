"""
User profile model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from admin_console.core.database.base import Base, TimestampMixin, generate_ulid


class User(Base, TimestampMixin):
    """
    User profile representing an authenticated marketplace account.

    Stored in the ``profiles`` table. A profile has at most one role; a
    profile without a role holds no permissions at all.
    """
    __tablename__ = "profiles"

    # Primary key using ULID (Universally Unique Lexicographically Sortable Identifier)
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Appwrite user ID (for linking with Appwrite authentication)
    appwrite_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Assigned role; a role cannot be deleted while profiles reference it
    role_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role_id={self.role_id})>"
