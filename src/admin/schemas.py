"""Pydantic schemas for admin actions."""

from pydantic import BaseModel, Field


class AccountDeletedResponse(BaseModel):
    """Result of deleting an account."""

    user_id: str
    enrollments_removed: int = Field(description="Enrollments removed with the account")
