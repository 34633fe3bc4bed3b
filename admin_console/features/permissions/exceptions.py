"""
Typed errors raised by the permission store, role registry and principal
resolver.

Each error carries the HTTP status the API layer answers with; the exception
handler registered in ``admin_console.main`` turns them into JSON responses.
"""
from typing import Optional


class AccessControlError(Exception):
    """Base class for access control errors."""
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AccessControlError):
    """Bad input shape, e.g. a malformed capability string or an empty role name."""
    status_code = 400


class ConflictError(ValidationError):
    """A role or permission with the same identity already exists."""
    status_code = 409


class NotFound(AccessControlError):
    status_code = 404


class ImmutableFieldError(AccessControlError):
    """Attempt to change a field that is fixed after creation."""
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Field '{field}' cannot be changed")
        self.field = field


class SystemRoleProtectedError(AccessControlError):
    status_code = 400


class RoleInUseError(AccessControlError):
    """Attempt to delete a role that users are still assigned to."""
    status_code = 409

    def __init__(self, user_count: int):
        noun = "user is" if user_count == 1 else "users are"
        super().__init__(f"Cannot delete role: {user_count} {noun} currently assigned to this role")
        self.user_count = user_count


class InvalidRoleError(AccessControlError):
    """Assigning a role that does not exist."""
    status_code = 400


class NoActiveSession(AccessControlError):
    status_code = 401


class StoreUnavailable(AccessControlError):
    """The backing store could not complete the operation."""
    status_code = 503
