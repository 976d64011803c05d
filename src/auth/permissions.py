"""Role-based access control (RBAC) for EnrollGate.

Hierarchical permission system:
- ADMIN (level 4): Privileged account and code administration, audit trail
- COORDINATOR (level 3): Payment verification, course enrollment statistics
- TEACHER (level 2): Course instructor
- STUDENT (level 1): Enrolls in courses and views own access

Role claims come from the identity provider and are trusted as given.
"""

from enum import Enum

from src.core.errors import PermissionDeniedError
from src.core.logging import get_logger


logger = get_logger(__name__)


class UserRole(str, Enum):
    """User roles with hierarchical levels.

    Higher level = more permissions.
    ADMIN can do everything COORDINATOR can do, and more.
    """

    STUDENT = "student"  # Level 1
    TEACHER = "teacher"  # Level 2
    COORDINATOR = "coordinator"  # Level 3
    ADMIN = "admin"  # Level 4


# Role hierarchy mapping (role -> permission level)
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 1,
    UserRole.TEACHER: 2,
    UserRole.COORDINATOR: 3,
    UserRole.ADMIN: 4,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Args:
        role: UserRole enum or string representation

    Returns:
        Permission level (1-4), defaults to 0 for unknown roles
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Uses hierarchical comparison: ADMIN >= COORDINATOR >= TEACHER >= STUDENT

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.COORDINATOR)
        True
        >>> has_permission(UserRole.TEACHER, UserRole.COORDINATOR)
        False
        >>> has_permission("coordinator", "student")
        True
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_at_least_coordinator(role: UserRole | str) -> bool:
    """Check if role is COORDINATOR or higher (ADMIN)."""
    return has_permission(role, UserRole.COORDINATOR)


def ensure_permission(
    user_id: str,
    user_role: UserRole | str,
    required_role: UserRole,
    operation: str,
) -> None:
    """Reject the operation unless the caller holds ``required_role`` or higher.

    A denied operation never happened, so it is logged but never audited.

    Raises:
        PermissionDeniedError: If the caller's role is below ``required_role``
    """
    if has_permission(user_role, required_role):
        return

    role_value = user_role.value if isinstance(user_role, UserRole) else user_role
    logger.warning(
        "permission_denied",
        actor_id=user_id,
        role=role_value,
        required_role=required_role.value,
        operation=operation,
    )
    raise PermissionDeniedError
