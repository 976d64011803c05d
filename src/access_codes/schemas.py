"""Pydantic schemas for access codes."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.access_codes.models import AccessCodeStatus
from src.access_codes.service import MAX_BULK_CODES


# ==============================================================================
# Request Schemas
# ==============================================================================


class IssueCodeRequest(BaseModel):
    """Request to issue access code(s) for a course (admin only)."""

    model_config = ConfigDict(extra="forbid")

    course_id: str = Field(min_length=1, max_length=100, description="Course ID")
    expires_at: datetime | None = Field(None, description="Optional expiry (UTC)")
    code: str | None = Field(
        None,
        min_length=4,
        max_length=32,
        description="Admin-chosen code; generated when omitted",
    )
    count: int = Field(
        default=1,
        ge=1,
        le=MAX_BULK_CODES,
        description="Number of codes to generate (ignored when code is given)",
    )


# ==============================================================================
# Response Schemas
# ==============================================================================


class AccessCodeResponse(BaseModel):
    """Access code response."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(description="Access code")
    course_id: str = Field(description="Course ID")
    issued_by: str = Field(description="Admin who issued the code")
    issued_at: datetime = Field(description="When the code was issued")
    expires_at: datetime | None = Field(None, description="Expiry, if any")
    status: AccessCodeStatus = Field(description="Current status")
    redeemed_by: str | None = Field(None, description="Student who redeemed it")
    redeemed_at: datetime | None = Field(None, description="When it was redeemed")
    revoked_by: str | None = Field(None, description="Admin who revoked it")
    revoked_at: datetime | None = Field(None, description="When it was revoked")


class AccessCodeListResponse(BaseModel):
    """List of access codes."""

    items: list[AccessCodeResponse]
    total: int
