"""Access code models and Cassandra schema.

Provides:
- AccessCode entity
- RedemptionResult
- Cassandra table definitions for codes and the per-course listing
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.utils.dates import ensure_utc_aware, utc_now


if TYPE_CHECKING:
    from cassandra.cluster import Row


class AccessCodeStatus(str, Enum):
    """Status of an access code.

    active -> redeemed | revoked | expired; every other status is terminal.
    """

    ACTIVE = "active"  # Issued, redeemable
    REDEEMED = "redeemed"  # Converted into an enrollment
    REVOKED = "revoked"  # Withdrawn by an admin
    EXPIRED = "expired"  # Past expires_at (derived on read)


TERMINAL_STATUSES = frozenset(
    {AccessCodeStatus.REDEEMED, AccessCodeStatus.REVOKED, AccessCodeStatus.EXPIRED}
)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ACCESS_CODES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.access_codes (
    code TEXT PRIMARY KEY,
    course_id TEXT,
    issued_by TEXT,
    issued_at TIMESTAMP,
    expires_at TIMESTAMP,
    status TEXT,
    redeemed_by TEXT,
    redeemed_at TIMESTAMP,
    revoked_by TEXT,
    revoked_at TIMESTAMP
)
"""

ACCESS_CODES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.access_codes_by_course (
    course_id TEXT,
    code TEXT,
    issued_at TIMESTAMP,
    PRIMARY KEY ((course_id), code)
)
"""

ACCESS_CODES_TABLES_CQL = [
    ACCESS_CODES_TABLE_CQL,
    ACCESS_CODES_BY_COURSE_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class AccessCode:
    """Single-use enrollment code for one course."""

    code: str
    course_id: str
    issued_by: str
    issued_at: datetime = field(default_factory=utc_now)
    expires_at: datetime | None = None
    status: AccessCodeStatus = AccessCodeStatus.ACTIVE
    redeemed_by: str | None = None
    redeemed_at: datetime | None = None
    revoked_by: str | None = None
    revoked_at: datetime | None = None

    @classmethod
    def from_row(cls, row: "Row", now: datetime | None = None) -> "AccessCode":
        """Create instance from Cassandra row.

        An active code past its expiry is reported as expired.
        """
        access_code = cls(
            code=row.code,
            course_id=row.course_id,
            issued_by=row.issued_by,
            issued_at=ensure_utc_aware(row.issued_at),
            expires_at=ensure_utc_aware(row.expires_at),
            status=AccessCodeStatus(row.status),
            redeemed_by=row.redeemed_by,
            redeemed_at=ensure_utc_aware(row.redeemed_at),
            revoked_by=row.revoked_by,
            revoked_at=ensure_utc_aware(row.revoked_at),
        )
        if access_code.status is AccessCodeStatus.ACTIVE and access_code.is_expired(now):
            access_code.status = AccessCodeStatus.EXPIRED
        return access_code

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the code is past its expiry."""
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "course_id": self.course_id,
            "issued_by": self.issued_by,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "status": self.status.value,
            "redeemed_by": self.redeemed_by,
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "revoked_by": self.revoked_by,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
        }


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of a successful redemption."""

    code: str
    course_id: str
    student_id: str
    redeemed_at: datetime
