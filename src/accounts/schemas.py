"""Pydantic schemas for user accounts."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.accounts.models import AccountStatus
from src.auth.permissions import UserRole


# ==============================================================================
# Request Schemas
# ==============================================================================


class AccountProfileUpdate(BaseModel):
    """Self-service profile update.

    Closed set of fields; anything else is rejected.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: str = Field(min_length=1, max_length=200, description="Full name")
    username: str | None = Field(None, min_length=1, max_length=50)

    @field_validator("full_name", "username")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            msg = "must not be blank"
            raise ValueError(msg)
        return v


class SuspendAccountRequest(BaseModel):
    """Admin request to suspend an account."""

    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=1, max_length=500, description="Suspension reason")


# ==============================================================================
# Response Schemas
# ==============================================================================


class AccountResponse(BaseModel):
    """User account response."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    full_name: str
    username: str | None = None
    role: UserRole
    status: AccountStatus
    suspension_reason: str | None = None
    suspended_at: datetime | None = None
    suspended_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class AccountListResponse(BaseModel):
    """List of user accounts."""

    items: list[AccountResponse]
    total: int
