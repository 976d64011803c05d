"""Admin API routes for the audit trail.

Endpoints for (ADMIN ONLY):
- GET /v1/admin/audit-logs - List entries, newest first
- GET /v1/admin/audit-logs/export - Download entries as CSV
"""

from contextlib import aclosing
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from src.audit.dependencies import get_audit_store
from src.audit.export import CSV_MEDIA_TYPE, export_audit_csv, export_filename
from src.audit.schemas import AuditLogListResponse
from src.audit.service import AuditLogStore
from src.auth.dependencies import require_permission
from src.auth.permissions import UserRole
from src.auth.schemas import Principal
from src.config import get_settings
from src.core.logging import get_logger
from src.utils.dates import utc_now


logger = get_logger(__name__)

router = APIRouter(
    prefix="/v1/admin/audit-logs",
    tags=["admin-audit"],
)


@router.get(
    "",
    response_model=AuditLogListResponse,
    summary="List audit log entries",
    description="Cursor-paginated audit trail, newest first. Admin only.",
)
async def list_audit_logs(
    _admin: Annotated[
        Principal, Depends(require_permission(UserRole.ADMIN, "list_audit_logs"))
    ],
    store: Annotated[AuditLogStore, Depends(get_audit_store)],
    limit: int | None = Query(default=None, ge=1, description="Items per page"),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
) -> AuditLogListResponse:
    """List audit log entries."""
    page = await store.list(limit=limit, before=cursor)
    return AuditLogListResponse.from_page(page)


@router.get(
    "/export",
    summary="Export audit log as CSV",
    description="Download the audit trail, newest first, as a CSV attachment. "
    "Admin only.",
    response_class=Response,
)
async def export_audit_logs(
    admin: Annotated[
        Principal, Depends(require_permission(UserRole.ADMIN, "export_audit_logs"))
    ],
    store: Annotated[AuditLogStore, Depends(get_audit_store)],
) -> Response:
    """Export audit log entries as CSV."""
    max_entries = get_settings().audit_export_max_entries

    entries = []
    async with aclosing(store.iter_entries(page_size=store.max_page_size)) as stream:
        async for entry in stream:
            entries.append(entry)
            if len(entries) >= max_entries:
                break

    filename = export_filename(utc_now().date())
    logger.info("audit_log_exported", entry_count=len(entries), admin_id=admin.id)

    return Response(
        content=export_audit_csv(entries),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
