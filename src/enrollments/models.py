"""Enrollment record models and Cassandra schema.

Provides:
- PaymentStatus with its transition rules
- Enrollment sources (access code or direct payment)
- EnrollmentRecord entity
- Cassandra table definitions

``payment_status`` and ``verified`` are independent: a record can be
``completed`` and unverified while it awaits manual review.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.core.errors import InvalidInputError
from src.utils.dates import ensure_utc_aware, utc_now


if TYPE_CHECKING:
    from cassandra.cluster import Row


class PaymentStatus(str, Enum):
    """Payment status reported by the payment provider."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: "PaymentStatus | str") -> "PaymentStatus":
        """Parse an untrusted status string.

        Raises:
            InvalidInputError: If the value is not a known status
        """
        try:
            return cls(value.strip().lower() if isinstance(value, str) else value)
        except ValueError as e:
            allowed = ", ".join(s.value for s in cls)
            msg = f"Unknown payment status {value!r}; expected one of: {allowed}"
            raise InvalidInputError(msg) from e


# current -> statuses it may move to (same-status updates are no-ops)
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """Check whether a payment status change is allowed."""
    return target in PAYMENT_TRANSITIONS[current]


@dataclass(frozen=True)
class CodeSource:
    """Enrollment created by redeeming an access code."""

    code: str


@dataclass(frozen=True)
class DirectPaymentSource:
    """Enrollment created by paying directly."""

    payment_reference: str | None = None


EnrollmentSource = CodeSource | DirectPaymentSource


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# One partition per student: "which courses is this student enrolled in?"
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    student_id TEXT,
    course_id TEXT,
    enrollment_code TEXT,
    payment_status TEXT,
    payment_reference TEXT,
    verified BOOLEAN,
    verified_at TIMESTAMP,
    verified_by TEXT,
    enrolled_at TIMESTAMP,
    updated_at TIMESTAMP,
    version INT,
    PRIMARY KEY ((student_id), course_id)
)
"""

# Lookup: students per course, keys only (state is read from enrollments)
ENROLLMENTS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_course (
    course_id TEXT,
    student_id TEXT,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((course_id), student_id)
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_COURSE_TABLE_CQL,
]


def enrollment_key(student_id: str, course_id: str) -> str:
    """Stable identifier of a (student, course) pair."""
    return f"{student_id}:{course_id}"


# ==============================================================================
# Entity
# ==============================================================================


@dataclass
class EnrollmentRecord:
    """Enrollment of one student in one course.

    Invariant: ``verified_at`` is set iff ``verified`` is true.

    ``version`` starts at 1 and grows by one with every committed change;
    updates are conditioned on it.
    """

    student_id: str
    course_id: str
    enrollment_code: str | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: str | None = None
    verified: bool = False
    verified_at: datetime | None = None
    verified_by: str | None = None
    enrolled_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None
    version: int = 1

    @classmethod
    def from_row(cls, row: "Row") -> "EnrollmentRecord":
        """Create instance from Cassandra row."""
        return cls(
            student_id=row.student_id,
            course_id=row.course_id,
            enrollment_code=row.enrollment_code,
            payment_status=PaymentStatus(row.payment_status),
            payment_reference=row.payment_reference,
            verified=bool(row.verified),
            verified_at=ensure_utc_aware(row.verified_at),
            verified_by=row.verified_by,
            enrolled_at=ensure_utc_aware(row.enrolled_at),
            updated_at=ensure_utc_aware(row.updated_at),
            version=row.version,
        )

    @property
    def key(self) -> str:
        return enrollment_key(self.student_id, self.course_id)

    @property
    def awaiting_review(self) -> bool:
        """Payment completed but not yet verified by a coordinator."""
        return self.payment_status is PaymentStatus.COMPLETED and not self.verified

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "enrollment_code": self.enrollment_code,
            "payment_status": self.payment_status.value,
            "payment_reference": self.payment_reference,
            "verified": self.verified,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verified_by": self.verified_by,
            "enrolled_at": self.enrolled_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }


@dataclass(frozen=True)
class CourseStatistics:
    """Aggregate enrollment state of a course."""

    course_id: str
    total: int = 0
    verified: int = 0
    pending: int = 0
    completed: int = 0
    failed: int = 0
    awaiting_review: int = 0
