"""Tests for access decisions and the course access flows."""

import pytest

from src.core.errors import (
    CodeAlreadyUsedError,
    CodeNotFoundError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    PaymentNotVerifiedError,
)
from src.enrollments.access import AccessVerdict, decide
from src.enrollments.models import EnrollmentRecord, PaymentStatus


class TestDecide:
    """Tests for the access decision engine."""

    def test_not_enrolled(self) -> None:
        decision = decide(None)
        assert decision.has_access is False
        assert decision.is_enrolled is False

    @pytest.mark.parametrize("status", list(PaymentStatus))
    def test_unverified_never_has_access(self, status) -> None:
        record = EnrollmentRecord(student_id="S1", course_id="C1", payment_status=status)

        decision = decide(record)

        assert decision.has_access is False
        assert decision.is_enrolled is True

    @pytest.mark.parametrize("status", list(PaymentStatus))
    def test_verified_has_access_regardless_of_payment(self, status) -> None:
        record = EnrollmentRecord(
            student_id="S1", course_id="C1", payment_status=status, verified=True
        )

        assert decide(record).has_access is True

    def test_verdict_reports_payment_status(self) -> None:
        record = EnrollmentRecord(
            student_id="S1", course_id="C1", payment_status=PaymentStatus.COMPLETED
        )

        verdict = AccessVerdict.from_record(record)

        assert verdict.has_access is False
        assert verdict.verified is False
        assert verdict.payment_status is PaymentStatus.COMPLETED

    def test_verdict_without_record(self) -> None:
        verdict = AccessVerdict.from_record(None)

        assert verdict.payment_status is None
        assert verdict.is_enrolled is False


class TestCourseAccessService:
    """Tests for CourseAccessService flows."""

    @pytest.mark.asyncio
    async def test_enroll_with_code(self, course_access, codes, admin_actor) -> None:
        await codes.issue("C1", admin_actor, code="ABC123")

        record = await course_access.enroll_with_code("S1", "abc123")

        assert record.course_id == "C1"
        assert record.enrollment_code == "ABC123"
        assert record.verified is False
        verdict = await course_access.get_access("S1", "C1")
        assert verdict.is_enrolled is True
        assert verdict.has_access is False

    @pytest.mark.asyncio
    async def test_enroll_with_unknown_code(self, course_access) -> None:
        with pytest.raises(CodeNotFoundError):
            await course_access.enroll_with_code("S1", "NOPE99")

    @pytest.mark.asyncio
    async def test_existing_enrollment_keeps_code_unused(
        self, course_access, codes, admin_actor
    ) -> None:
        await course_access.enroll_with_payment("S1", "C1")
        await codes.issue("C1", admin_actor, code="ABC123")

        with pytest.raises(DuplicateEnrollmentError):
            await course_access.enroll_with_code("S1", "ABC123")

        assert (await codes.get("ABC123")).redeemed_by is None

    @pytest.mark.asyncio
    async def test_redeemed_code_rejected_for_second_student(
        self, course_access, codes, admin_actor
    ) -> None:
        await codes.issue("C1", admin_actor, code="ABC123")
        await course_access.enroll_with_code("S1", "ABC123")

        with pytest.raises(CodeAlreadyUsedError):
            await course_access.enroll_with_code("S2", "ABC123")
        assert await course_access.enrollments.get("S2", "C1") is None

    @pytest.mark.asyncio
    async def test_require_access_not_enrolled(self, course_access) -> None:
        with pytest.raises(EnrollmentNotFoundError) as exc_info:
            await course_access.require_access("S1", "C1")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_payment_callback_alone_does_not_grant_access(
        self, course_access
    ) -> None:
        await course_access.enroll_with_payment("S1", "C1", payment_reference="pay_1")
        await course_access.record_payment_status("S1", "C1", "completed")

        with pytest.raises(PaymentNotVerifiedError) as exc_info:
            await course_access.require_access("S1", "C1")
        assert exc_info.value.status_code == 402

    @pytest.mark.asyncio
    async def test_verified_enrollment_grants_access(
        self, course_access, enrollments
    ) -> None:
        await course_access.enroll_with_payment("S1", "C1")
        await enrollments.verify("S1", "C1", verified_by="coord-1")

        record = await course_access.require_access("S1", "C1")

        assert record.verified is True
        assert (await course_access.get_access("S1", "C1")).has_access is True
