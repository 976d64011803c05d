"""Enrollment records and course access decisions.

Provides:
- Enrollment record store (compare-and-set state changes)
- Access decision engine (access is gated on verification only)
- Code and direct-payment enrollment flows, payment callbacks

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.enrollments.access import AccessDecision, AccessVerdict, decide
from src.enrollments.access_service import CourseAccessService
from src.enrollments.models import (
    ENROLLMENTS_TABLES_CQL,
    CodeSource,
    CourseStatistics,
    DirectPaymentSource,
    EnrollmentRecord,
    PaymentStatus,
)
from src.enrollments.service import EnrollmentStore


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "AccessDecision",
    "AccessVerdict",
    "CodeSource",
    "CourseAccessService",
    "CourseStatistics",
    "DirectPaymentSource",
    "EnrollmentRecord",
    "EnrollmentStore",
    "PaymentStatus",
    "decide",
]
