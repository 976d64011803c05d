"""Course access flows.

Business logic for:
- Access verdict queries (dashboards, content gating)
- Enrolling with an access code
- Enrolling by direct payment
- Applying payment provider callbacks
"""

from typing import TYPE_CHECKING

from src.core.errors import (
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    PaymentNotVerifiedError,
)
from src.core.logging import get_logger
from src.enrollments.access import AccessVerdict
from src.enrollments.models import (
    CodeSource,
    DirectPaymentSource,
    EnrollmentRecord,
    PaymentStatus,
)


if TYPE_CHECKING:
    from src.access_codes.service import AccessCodeRegistry
    from src.enrollments.service import EnrollmentStore


logger = get_logger(__name__)


class CourseAccessService:
    """Service combining the code registry and enrollment store."""

    def __init__(
        self,
        enrollments: "EnrollmentStore",
        codes: "AccessCodeRegistry",
    ) -> None:
        self.enrollments = enrollments
        self.codes = codes

    # ==========================================================================
    # Access verdict
    # ==========================================================================

    async def get_access(self, student_id: str, course_id: str) -> AccessVerdict:
        """Current access verdict, recomputed from the stored record."""
        record = await self.enrollments.get(student_id, course_id)
        verdict = AccessVerdict.from_record(record)

        logger.debug(
            "access_decided",
            student_id=student_id,
            course_id=course_id,
            has_access=verdict.has_access,
            is_enrolled=verdict.is_enrolled,
        )
        return verdict

    async def require_access(self, student_id: str, course_id: str) -> EnrollmentRecord:
        """Gate paid content.

        Raises:
            EnrollmentNotFoundError: If the student is not enrolled
            PaymentNotVerifiedError: If the enrollment is not verified yet
        """
        record = await self.enrollments.get(student_id, course_id)
        if record is None:
            msg = "You are not enrolled in this course."
            raise EnrollmentNotFoundError(msg)
        if not record.verified:
            logger.info(
                "access_denied_unverified",
                student_id=student_id,
                course_id=course_id,
                payment_status=record.payment_status.value,
            )
            raise PaymentNotVerifiedError
        return record

    # ==========================================================================
    # Enrollment flows
    # ==========================================================================

    async def enroll_with_code(self, student_id: str, code: str) -> EnrollmentRecord:
        """Redeem a code and create the matching enrollment.

        An existing enrollment is detected before the code is consumed.

        Raises:
            CodeNotFoundError, CodeAlreadyUsedError, CodeExpiredError:
                If the code cannot be redeemed
            DuplicateEnrollmentError: If already enrolled in the code's course
        """
        access_code = await self.codes.get(code)
        if access_code is not None:
            existing = await self.enrollments.get(student_id, access_code.course_id)
            if existing is not None:
                raise DuplicateEnrollmentError

        redemption = await self.codes.redeem(code, student_id)

        try:
            return await self.enrollments.create(
                student_id,
                redemption.course_id,
                CodeSource(code=redemption.code),
            )
        except DuplicateEnrollmentError:
            logger.warning(
                "access_code_redeemed_for_existing_enrollment",
                access_code=redemption.code,
                student_id=student_id,
                course_id=redemption.course_id,
            )
            raise

    async def enroll_with_payment(
        self,
        student_id: str,
        course_id: str,
        payment_reference: str | None = None,
    ) -> EnrollmentRecord:
        """Create an enrollment paid for directly.

        Raises:
            DuplicateEnrollmentError: If already enrolled
        """
        return await self.enrollments.create(
            student_id,
            course_id,
            DirectPaymentSource(payment_reference=payment_reference),
        )

    async def record_payment_status(
        self,
        student_id: str,
        course_id: str,
        status: PaymentStatus | str,
        payment_reference: str | None = None,
    ) -> EnrollmentRecord:
        """Apply an untrusted payment status from the payment provider.

        Never grants access: ``verified`` is left untouched.
        """
        logger.info(
            "payment_callback_received",
            student_id=student_id,
            course_id=course_id,
            payment_status=status.value if isinstance(status, PaymentStatus) else status,
        )
        return await self.enrollments.update_payment_status(
            student_id,
            course_id,
            status,
            payment_reference=payment_reference,
        )
