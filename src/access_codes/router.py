"""Admin API routes for reading access codes.

Endpoints for (ADMIN ONLY):
- GET /v1/admin/access-codes?course_id=... - List a course's codes
- GET /v1/admin/access-codes/{code} - Look up one code

Issuing and revoking codes are privileged actions served by the admin router.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.access_codes.dependencies import get_access_code_registry
from src.access_codes.schemas import AccessCodeListResponse, AccessCodeResponse
from src.access_codes.service import AccessCodeRegistry
from src.auth.dependencies import require_permission
from src.auth.permissions import UserRole
from src.auth.schemas import Principal
from src.core.errors import CodeNotFoundError


router = APIRouter(
    prefix="/v1/admin/access-codes",
    tags=["admin-access-codes"],
)

AdminPrincipal = Annotated[
    Principal, Depends(require_permission(UserRole.ADMIN, "read_access_codes"))
]


@router.get(
    "",
    response_model=AccessCodeListResponse,
    summary="List access codes for a course",
)
async def list_access_codes(
    _admin: AdminPrincipal,
    registry: Annotated[AccessCodeRegistry, Depends(get_access_code_registry)],
    course_id: str = Query(..., min_length=1, description="Course ID"),
) -> AccessCodeListResponse:
    """List a course's access codes, newest first."""
    codes = await registry.list_for_course(course_id)
    return AccessCodeListResponse(
        items=[AccessCodeResponse.model_validate(c) for c in codes],
        total=len(codes),
    )


@router.get(
    "/{code}",
    response_model=AccessCodeResponse,
    summary="Get an access code",
)
async def get_access_code(
    code: str,
    _admin: AdminPrincipal,
    registry: Annotated[AccessCodeRegistry, Depends(get_access_code_registry)],
) -> AccessCodeResponse:
    """Get one access code with its current status."""
    access_code = await registry.get(code)
    if access_code is None:
        raise CodeNotFoundError
    return AccessCodeResponse.model_validate(access_code)
