"""Pydantic schemas for the authenticated caller."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.auth.permissions import UserRole


class Principal(BaseModel):
    """Authenticated caller, built from identity-provider claims."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="User ID (token subject)")
    role: UserRole = Field(description="User role")
    name: str = Field(default="", description="Display name")

    @classmethod
    def from_claims(cls, payload: dict[str, Any]) -> "Principal":
        """Create principal from a decoded access token payload."""
        return cls(
            id=str(payload["sub"]),
            role=payload["role"],
            name=payload.get("name") or "",
        )
