"""Pydantic schemas for the audit log.

Response models and the opaque pagination cursor.
"""

import base64
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.audit.models import AuditAction, AuditLogEntry, AuditTargetType
from src.core.errors import InvalidInputError
from src.utils.dates import ensure_utc_aware


@dataclass(frozen=True)
class AuditPage:
    """One page of entries, newest first."""

    items: list[AuditLogEntry] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


# ==============================================================================
# Response Schemas
# ==============================================================================


class AuditLogEntryResponse(BaseModel):
    """Single audit log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Entry ID (time-based)")
    timestamp: datetime = Field(description="When the action was performed (UTC)")
    admin_id: str = Field(description="Admin who performed the action")
    admin_name: str = Field(description="Admin display name at the time")
    action: AuditAction = Field(description="Privileged action")
    target_type: AuditTargetType = Field(description="Kind of target entity")
    target_id: str = Field(description="Target entity ID")
    details: str = Field(description="Free-text details")


class AuditLogListResponse(BaseModel):
    """Cursor-paginated audit log list."""

    items: list[AuditLogEntryResponse] = Field(description="Entries, newest first")
    has_more: bool = Field(description="Whether older entries exist")
    next_cursor: str | None = Field(None, description="Cursor for the next page")

    @classmethod
    def from_page(cls, page: AuditPage) -> "AuditLogListResponse":
        return cls(
            items=[AuditLogEntryResponse.model_validate(e) for e in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )


# ==============================================================================
# Cursor Encoding/Decoding
# ==============================================================================


def encode_cursor(timestamp: datetime, entry_id: UUID) -> str:
    """Encode pagination cursor."""
    cursor_str = f"{timestamp.isoformat()}|{entry_id}"
    return base64.urlsafe_b64encode(cursor_str.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Decode pagination cursor.

    Raises:
        InvalidInputError: If the cursor was not produced by ``encode_cursor``
    """
    try:
        cursor_str = base64.urlsafe_b64decode(cursor.encode()).decode()
        parts = cursor_str.split("|")
        timestamp = ensure_utc_aware(datetime.fromisoformat(parts[0]))
        entry_id = UUID(parts[1])
        return timestamp, entry_id
    except (ValueError, IndexError) as e:
        msg = f"Invalid cursor format: {e}"
        raise InvalidInputError(msg) from e
