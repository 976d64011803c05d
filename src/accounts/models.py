"""User account models and Cassandra schema.

Accounts mirror identities issued by the identity provider. They are created
on first authenticated use and carry the admin-controlled status.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from src.auth.permissions import UserRole
from src.utils.dates import ensure_utc_aware, utc_now


if TYPE_CHECKING:
    from cassandra.cluster import Row


class AccountStatus(str, Enum):
    """Admin-controlled account status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ACCOUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.accounts (
    user_id TEXT PRIMARY KEY,
    full_name TEXT,
    username TEXT,
    role TEXT,
    status TEXT,
    suspension_reason TEXT,
    suspended_at TIMESTAMP,
    suspended_by TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    status_change_id TIMEUUID
)
"""

ACCOUNTS_TABLES_CQL = [
    ACCOUNTS_TABLE_CQL,
]


@dataclass
class UserAccount:
    """User account entity.

    Attributes:
        user_id: Identity provider subject
        full_name: Display name
        username: Optional handle chosen by the user
        role: Role at account creation (authorization uses the token's role)
        status: active or suspended
        suspension_reason: Admin-supplied reason while suspended
        suspended_at: When the account was suspended
        suspended_by: Admin who suspended it
        status_change_id: Identifies the last suspension or unsuspension;
            status changes are conditioned on it
    """

    user_id: str
    full_name: str = ""
    username: str | None = None
    role: UserRole = UserRole.STUDENT
    status: AccountStatus = AccountStatus.ACTIVE
    suspension_reason: str | None = None
    suspended_at: datetime | None = None
    suspended_by: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None
    status_change_id: UUID | None = None

    @classmethod
    def from_row(cls, row: "Row") -> "UserAccount":
        """Create instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            full_name=row.full_name or "",
            username=row.username,
            role=UserRole(row.role),
            status=AccountStatus(row.status),
            suspension_reason=row.suspension_reason,
            suspended_at=ensure_utc_aware(row.suspended_at),
            suspended_by=row.suspended_by,
            created_at=ensure_utc_aware(row.created_at),
            updated_at=ensure_utc_aware(row.updated_at),
            status_change_id=row.status_change_id,
        )

    @property
    def is_suspended(self) -> bool:
        return self.status is AccountStatus.SUSPENDED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "username": self.username,
            "role": self.role.value,
            "status": self.status.value,
            "suspension_reason": self.suspension_reason,
            "suspended_at": self.suspended_at.isoformat() if self.suspended_at else None,
            "suspended_by": self.suspended_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
