"""Access decision engine.

Access is gated strictly on ``verified``. ``payment_status`` is reported
alongside but never grants access, so a payment provider callback alone can
never open a course.
"""

from dataclasses import dataclass

from src.enrollments.models import EnrollmentRecord, PaymentStatus


@dataclass(frozen=True)
class AccessDecision:
    """Derived access verdict. Never stored."""

    has_access: bool
    is_enrolled: bool


@dataclass(frozen=True)
class AccessVerdict:
    """Access verdict as shown on dashboards."""

    has_access: bool
    is_enrolled: bool
    verified: bool
    payment_status: PaymentStatus | None

    @classmethod
    def from_record(cls, record: EnrollmentRecord | None) -> "AccessVerdict":
        decision = decide(record)
        return cls(
            has_access=decision.has_access,
            is_enrolled=decision.is_enrolled,
            verified=record.verified if record else False,
            payment_status=record.payment_status if record else None,
        )


NOT_ENROLLED = AccessDecision(has_access=False, is_enrolled=False)


def decide(record: EnrollmentRecord | None) -> AccessDecision:
    """Map the current enrollment record to an access decision."""
    if record is None:
        return NOT_ENROLLED
    return AccessDecision(has_access=record.verified, is_enrolled=True)
