"""Admin action routes.

Endpoints for:
- POST /v1/admin/access-codes - Generate access code(s)
- POST /v1/admin/access-codes/{code}/revoke - Revoke an access code
- POST /v1/admin/enrollments/{student_id}/{course_id}/verify - Verify (coordinator+)
- POST /v1/admin/enrollments/{student_id}/{course_id}/reset - Reset verification
- GET /v1/admin/accounts - List accounts
- POST /v1/admin/accounts/{user_id}/suspend - Suspend account
- POST /v1/admin/accounts/{user_id}/unsuspend - Lift suspension
- DELETE /v1/admin/accounts/{user_id} - Delete account and its enrollments

Role checks happen in the service so denials are logged uniformly.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.access_codes.schemas import (
    AccessCodeListResponse,
    AccessCodeResponse,
    IssueCodeRequest,
)
from src.accounts.schemas import AccountListResponse, AccountResponse, SuspendAccountRequest
from src.admin.dependencies import get_admin_service
from src.admin.schemas import AccountDeletedResponse
from src.admin.service import AdminActionService
from src.auth.dependencies import CurrentUser
from src.enrollments.schemas import EnrollmentResponse


router = APIRouter(
    prefix="/v1/admin",
    tags=["admin"],
)

AdminService = Annotated[AdminActionService, Depends(get_admin_service)]


# ==============================================================================
# Access codes
# ==============================================================================


@router.post(
    "/access-codes",
    response_model=AccessCodeListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate access codes",
    description="Issue one admin-chosen code, or `count` generated codes.",
)
async def generate_access_codes(
    body: IssueCodeRequest,
    current_user: CurrentUser,
    service: AdminService,
) -> AccessCodeListResponse:
    """Generate access codes for a course."""
    if body.code is not None or body.count == 1:
        issued = [
            await service.generate_code(
                current_user,
                body.course_id,
                expires_at=body.expires_at,
                code=body.code,
            )
        ]
    else:
        issued = await service.generate_codes(
            current_user,
            body.course_id,
            body.count,
            expires_at=body.expires_at,
        )

    return AccessCodeListResponse(
        items=[AccessCodeResponse.model_validate(c) for c in issued],
        total=len(issued),
    )


@router.post(
    "/access-codes/{code}/revoke",
    response_model=AccessCodeResponse,
    summary="Revoke an access code",
)
async def revoke_access_code(
    code: str,
    current_user: CurrentUser,
    service: AdminService,
) -> AccessCodeResponse:
    """Revoke an active access code."""
    revoked = await service.revoke_code(current_user, code)
    return AccessCodeResponse.model_validate(revoked)


# ==============================================================================
# Enrollments
# ==============================================================================


@router.post(
    "/enrollments/{student_id}/{course_id}/verify",
    response_model=EnrollmentResponse,
    summary="Verify an enrollment",
    description="Coordinator or admin. Idempotent.",
)
async def verify_enrollment(
    student_id: str,
    course_id: str,
    current_user: CurrentUser,
    service: AdminService,
) -> EnrollmentResponse:
    """Grant access by marking the enrollment verified."""
    record = await service.verify_enrollment(current_user, student_id, course_id)
    return EnrollmentResponse.from_record(record)


@router.post(
    "/enrollments/{student_id}/{course_id}/reset",
    response_model=EnrollmentResponse,
    summary="Reset an enrollment",
    description="Clears verification and returns payment status to pending.",
)
async def reset_enrollment(
    student_id: str,
    course_id: str,
    current_user: CurrentUser,
    service: AdminService,
) -> EnrollmentResponse:
    """Reset an enrollment's verification."""
    record = await service.reset_enrollment(current_user, student_id, course_id)
    return EnrollmentResponse.from_record(record)


# ==============================================================================
# Accounts
# ==============================================================================


@router.get(
    "/accounts",
    response_model=AccountListResponse,
    summary="List accounts",
)
async def list_accounts(
    current_user: CurrentUser,
    service: AdminService,
) -> AccountListResponse:
    """List every account, newest first."""
    accounts = await service.list_accounts(current_user)
    return AccountListResponse(
        items=[AccountResponse.model_validate(a) for a in accounts],
        total=len(accounts),
    )


@router.post(
    "/accounts/{user_id}/suspend",
    response_model=AccountResponse,
    summary="Suspend an account",
)
async def suspend_account(
    user_id: str,
    body: SuspendAccountRequest,
    current_user: CurrentUser,
    service: AdminService,
) -> AccountResponse:
    """Suspend an account with a reason."""
    account = await service.suspend_account(current_user, user_id, body.reason)
    return AccountResponse.model_validate(account)


@router.post(
    "/accounts/{user_id}/unsuspend",
    response_model=AccountResponse,
    summary="Lift a suspension",
)
async def unsuspend_account(
    user_id: str,
    current_user: CurrentUser,
    service: AdminService,
) -> AccountResponse:
    """Reactivate a suspended account."""
    account = await service.unsuspend_account(current_user, user_id)
    return AccountResponse.model_validate(account)


@router.delete(
    "/accounts/{user_id}",
    response_model=AccountDeletedResponse,
    summary="Delete an account",
    description="Removes the account and every enrollment of that user.",
)
async def delete_account(
    user_id: str,
    current_user: CurrentUser,
    service: AdminService,
) -> AccountDeletedResponse:
    """Delete an account."""
    removed = await service.delete_account(current_user, user_id)
    return AccountDeletedResponse(user_id=user_id, enrollments_removed=removed)
