"""Pydantic schemas for enrollments and access verdicts."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.enrollments.access import AccessVerdict
from src.enrollments.models import CourseStatistics, EnrollmentRecord, PaymentStatus


# ==============================================================================
# Request Schemas
# ==============================================================================


class RedeemCodeRequest(BaseModel):
    """Request to enroll with an access code."""

    code: str = Field(min_length=1, max_length=64, description="Access code")


class DirectEnrollRequest(BaseModel):
    """Request to enroll by paying directly."""

    course_id: str = Field(min_length=1, max_length=100, description="Course ID")
    payment_reference: str | None = Field(
        None, max_length=200, description="Payment provider reference"
    )


class PaymentStatusUpdateRequest(BaseModel):
    """Payment provider callback.

    ``payment_status`` is an untrusted string validated by the store.
    """

    student_id: str = Field(min_length=1, max_length=100)
    course_id: str = Field(min_length=1, max_length=100)
    payment_status: str = Field(min_length=1, max_length=50)
    payment_reference: str | None = Field(None, max_length=200)


# ==============================================================================
# Response Schemas
# ==============================================================================


class EnrollmentResponse(BaseModel):
    """Enrollment record response."""

    model_config = ConfigDict(from_attributes=True)

    student_id: str
    course_id: str
    enrollment_code: str | None = None
    payment_status: PaymentStatus
    payment_reference: str | None = None
    verified: bool
    verified_at: datetime | None = None
    verified_by: str | None = None
    enrolled_at: datetime
    updated_at: datetime | None = None
    version: int

    @classmethod
    def from_record(cls, record: EnrollmentRecord) -> "EnrollmentResponse":
        return cls.model_validate(record)


class EnrollmentListResponse(BaseModel):
    """List of enrollment records."""

    items: list[EnrollmentResponse]
    total: int

    @classmethod
    def from_records(cls, records: list[EnrollmentRecord]) -> "EnrollmentListResponse":
        return cls(
            items=[EnrollmentResponse.from_record(r) for r in records],
            total=len(records),
        )


class AccessVerdictResponse(BaseModel):
    """Access verdict for a student and course."""

    model_config = ConfigDict(from_attributes=True)

    has_access: bool = Field(description="Whether gated content may be shown")
    is_enrolled: bool = Field(description="Whether an enrollment exists")
    verified: bool = Field(description="Whether payment was verified")
    payment_status: PaymentStatus | None = Field(
        None, description="Payment status, if enrolled"
    )

    @classmethod
    def from_verdict(cls, verdict: AccessVerdict) -> "AccessVerdictResponse":
        return cls.model_validate(verdict)


class CourseStatisticsResponse(BaseModel):
    """Aggregate enrollment state of a course."""

    model_config = ConfigDict(from_attributes=True)

    course_id: str
    total: int = Field(description="Enrolled students")
    verified: int = Field(description="Verified enrollments")
    pending: int = Field(description="Payments pending")
    completed: int = Field(description="Payments completed")
    failed: int = Field(description="Payments failed")
    awaiting_review: int = Field(
        description="Payments completed but not yet verified"
    )

    @classmethod
    def from_statistics(cls, stats: CourseStatistics) -> "CourseStatisticsResponse":
        return cls.model_validate(stats)
