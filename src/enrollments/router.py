"""Enrollment API routes.

Endpoints for:
- GET /v1/enrollments/access/{course_id} - Access verdict for the caller
- GET /v1/enrollments/content/{course_id} - Gate paid content (402 until verified)
- GET /v1/enrollments/me - Caller's enrollments
- POST /v1/enrollments/redeem - Enroll with an access code
- POST /v1/enrollments - Enroll by direct payment
- GET /v1/enrollments/courses/{course_id} - Course enrollments (coordinator+)
- GET /v1/enrollments/courses/{course_id}/statistics - Course stats (coordinator+)

Integration endpoints (X-API-Key):
- POST /v1/integrations/payments - Payment provider status callback
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.accounts.dependencies import ActiveUser
from src.auth.dependencies import CurrentUser, MasterApiKey, require_permission
from src.auth.permissions import UserRole
from src.auth.schemas import Principal
from src.enrollments.access_service import CourseAccessService
from src.enrollments.dependencies import get_course_access_service, get_enrollment_store
from src.enrollments.schemas import (
    AccessVerdictResponse,
    CourseStatisticsResponse,
    DirectEnrollRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    PaymentStatusUpdateRequest,
    RedeemCodeRequest,
)
from src.enrollments.service import EnrollmentStore


router = APIRouter(
    prefix="/v1/enrollments",
    tags=["enrollments"],
)

integrations_router = APIRouter(
    prefix="/v1/integrations",
    tags=["integrations"],
)

CoordinatorPrincipal = Annotated[
    Principal,
    Depends(require_permission(UserRole.COORDINATOR, "view_course_enrollments")),
]


@router.get(
    "/access/{course_id}",
    response_model=AccessVerdictResponse,
    summary="Get access verdict",
    description="Whether the caller may view the course's paid content.",
)
async def get_access(
    course_id: str,
    current_user: CurrentUser,
    service: Annotated[CourseAccessService, Depends(get_course_access_service)],
) -> AccessVerdictResponse:
    """Get the caller's access verdict for a course."""
    verdict = await service.get_access(current_user.id, course_id)
    return AccessVerdictResponse.from_verdict(verdict)


@router.get(
    "/content/{course_id}",
    response_model=EnrollmentResponse,
    summary="Gate paid content",
    description="Succeeds only for verified enrollments; 402 while payment "
    "verification is pending.",
)
async def require_content_access(
    course_id: str,
    current_user: CurrentUser,
    service: Annotated[CourseAccessService, Depends(get_course_access_service)],
) -> EnrollmentResponse:
    """Check gated content access for the caller."""
    record = await service.require_access(current_user.id, course_id)
    return EnrollmentResponse.from_record(record)


@router.get(
    "/me",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    current_user: CurrentUser,
    store: Annotated[EnrollmentStore, Depends(get_enrollment_store)],
) -> EnrollmentListResponse:
    """List the caller's enrollments, newest first."""
    records = await store.list_for_student(current_user.id)
    return EnrollmentListResponse.from_records(records)


@router.post(
    "/redeem",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll with an access code",
)
async def redeem_code(
    body: RedeemCodeRequest,
    current_user: ActiveUser,
    service: Annotated[CourseAccessService, Depends(get_course_access_service)],
) -> EnrollmentResponse:
    """Redeem an access code; the enrollment awaits verification."""
    record = await service.enroll_with_code(current_user.id, body.code)
    return EnrollmentResponse.from_record(record)


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll by direct payment",
)
async def enroll_with_payment(
    body: DirectEnrollRequest,
    current_user: ActiveUser,
    service: Annotated[CourseAccessService, Depends(get_course_access_service)],
) -> EnrollmentResponse:
    """Create an enrollment paid for directly; payment status starts pending."""
    record = await service.enroll_with_payment(
        current_user.id,
        body.course_id,
        payment_reference=body.payment_reference,
    )
    return EnrollmentResponse.from_record(record)


@router.get(
    "/courses/{course_id}",
    response_model=EnrollmentListResponse,
    summary="List course enrollments",
    description="Coordinator or admin only.",
)
async def list_course_enrollments(
    course_id: str,
    _coordinator: CoordinatorPrincipal,
    store: Annotated[EnrollmentStore, Depends(get_enrollment_store)],
) -> EnrollmentListResponse:
    """List a course's enrollments, newest first."""
    records = await store.list_for_course(course_id)
    return EnrollmentListResponse.from_records(records)


@router.get(
    "/courses/{course_id}/statistics",
    response_model=CourseStatisticsResponse,
    summary="Course enrollment statistics",
    description="Coordinator or admin only. Includes enrollments awaiting review.",
)
async def get_course_statistics(
    course_id: str,
    _coordinator: CoordinatorPrincipal,
    store: Annotated[EnrollmentStore, Depends(get_enrollment_store)],
) -> CourseStatisticsResponse:
    """Aggregate enrollment state of a course."""
    stats = await store.course_statistics(course_id)
    return CourseStatisticsResponse.from_statistics(stats)


# ==============================================================================
# Integrations
# ==============================================================================


@integrations_router.post(
    "/payments",
    response_model=EnrollmentResponse,
    summary="Payment status callback",
    description="Payment provider reports a payment status. Never grants access "
    "by itself; a coordinator must verify the enrollment.",
)
async def payment_status_callback(
    body: PaymentStatusUpdateRequest,
    _api_key: MasterApiKey,
    service: Annotated[CourseAccessService, Depends(get_course_access_service)],
) -> EnrollmentResponse:
    """Apply a payment status update."""
    record = await service.record_payment_status(
        body.student_id,
        body.course_id,
        body.payment_status,
        payment_reference=body.payment_reference,
    )
    return EnrollmentResponse.from_record(record)
