"""Audit trail of privileged administrative actions.

Provides:
- Append-only audit log store (single writer of the trail)
- Cursor pagination, newest first
- CSV export

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.audit.export import export_audit_csv, export_filename
from src.audit.models import (
    AUDIT_TABLES_CQL,
    AuditAction,
    AuditActor,
    AuditLogEntry,
    AuditLogEntryInput,
    AuditTargetType,
)
from src.audit.schemas import AuditPage
from src.audit.service import AuditLogStore


__all__ = [
    "AUDIT_TABLES_CQL",
    "AuditAction",
    "AuditActor",
    "AuditLogEntry",
    "AuditLogEntryInput",
    "AuditLogStore",
    "AuditPage",
    "AuditTargetType",
    "export_audit_csv",
    "export_filename",
]
