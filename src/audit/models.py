"""Audit log models and Cassandra schema.

Provides:
- AuditAction / AuditTargetType closed sets
- AuditActor (the admin performing a privileged action)
- AuditLogEntryInput (what callers append) and AuditLogEntry (what is stored)
- Cassandra table definitions

Entries are append-only. Rows are partitioned by calendar month and clustered
by (timestamp DESC, entry_id DESC); ``entry_id`` is a time-based UUID, so
entries sharing a millisecond stay in insertion order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid1

from src.core.errors import InvalidInputError
from src.utils.dates import ensure_utc_aware, utc_now


if TYPE_CHECKING:
    from cassandra.cluster import Row


class AuditAction(str, Enum):
    """Privileged actions recorded in the audit trail."""

    GENERATE_CODE = "generate_code"
    REVOKE_CODE = "revoke_code"
    DELETE_ACCOUNT = "delete_account"
    RESET_ACCOUNT = "reset_account"
    SUSPEND_ACCOUNT = "suspend_account"
    UNSUSPEND_ACCOUNT = "unsuspend_account"

    @property
    def label(self) -> str:
        """Display form: ``generate_code`` -> ``Generate Code``."""
        return self.value.replace("_", " ").title()


class AuditTargetType(str, Enum):
    """Kind of entity a privileged action was applied to."""

    USER = "user"
    CODE = "code"
    ENROLLMENT = "enrollment"


# Partition scope for the bucket index (single logical audit trail)
AUDIT_BUCKET_SCOPE = "audit"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

AUDIT_LOGS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.audit_logs (
    bucket TEXT,
    timestamp TIMESTAMP,
    entry_id TIMEUUID,
    admin_id TEXT,
    admin_name TEXT,
    action TEXT,
    target_type TEXT,
    target_id TEXT,
    details TEXT,
    PRIMARY KEY ((bucket), timestamp, entry_id)
) WITH CLUSTERING ORDER BY (timestamp DESC, entry_id DESC)
"""

AUDIT_LOG_BUCKETS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.audit_log_buckets (
    scope TEXT,
    bucket TEXT,
    PRIMARY KEY ((scope), bucket)
) WITH CLUSTERING ORDER BY (bucket DESC)
"""

AUDIT_TABLES_CQL = [
    AUDIT_LOGS_TABLE_CQL,
    AUDIT_LOG_BUCKETS_TABLE_CQL,
]


def bucket_for(timestamp: datetime) -> str:
    """Monthly partition key for an entry timestamp (``YYYY-MM``)."""
    return timestamp.strftime("%Y-%m")


# ==============================================================================
# Entities
# ==============================================================================


@dataclass(frozen=True)
class AuditActor:
    """Identity of the admin performing a privileged action."""

    id: str
    name: str


@dataclass(frozen=True)
class AuditLogEntryInput:
    """Fields a caller supplies when appending an entry."""

    actor: AuditActor
    action: AuditAction
    target_type: AuditTargetType
    target_id: str
    details: str = ""

    def __post_init__(self) -> None:
        # Coerce raw strings into the closed sets; anything else is rejected.
        try:
            object.__setattr__(self, "action", AuditAction(self.action))
            object.__setattr__(
                self, "target_type", AuditTargetType(self.target_type)
            )
        except ValueError as e:
            msg = f"Invalid audit entry: {e}"
            raise InvalidInputError(msg) from e
        if not self.actor.id:
            msg = "Audit entry requires an admin id"
            raise InvalidInputError(msg)
        if not self.target_id:
            msg = "Audit entry requires a target id"
            raise InvalidInputError(msg)


@dataclass(frozen=True)
class AuditLogEntry:
    """A stored, immutable audit log entry."""

    admin_id: str
    admin_name: str
    action: AuditAction
    target_type: AuditTargetType
    target_id: str
    details: str
    id: UUID = field(default_factory=uuid1)
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_input(cls, entry: AuditLogEntryInput) -> "AuditLogEntry":
        """Stamp id and timestamp on a caller-supplied entry."""
        return cls(
            admin_id=entry.actor.id,
            admin_name=entry.actor.name,
            action=entry.action,
            target_type=entry.target_type,
            target_id=entry.target_id,
            details=entry.details,
        )

    @classmethod
    def from_row(cls, row: "Row") -> "AuditLogEntry":
        """Create instance from Cassandra row."""
        return cls(
            id=row.entry_id,
            timestamp=ensure_utc_aware(row.timestamp),
            admin_id=row.admin_id,
            admin_name=row.admin_name or "",
            action=AuditAction(row.action),
            target_type=AuditTargetType(row.target_type),
            target_id=row.target_id,
            details=row.details or "",
        )

    @property
    def bucket(self) -> str:
        return bucket_for(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "admin_id": self.admin_id,
            "admin_name": self.admin_name,
            "action": self.action.value,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "details": self.details,
        }
