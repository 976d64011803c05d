"""CSV export of the audit trail.

Format:
    Timestamp,Admin,Action,Target Type,Target ID,Details
    "2024-05-01T10:00:00.000000+00:00","Ada","Generate Code","code","ABC123","..."

The header row is written bare; every data field is double-quoted with
embedded quotes doubled. Output is deterministic for a given entry sequence.
"""

import csv
import io
from collections.abc import Iterable
from datetime import date

from src.audit.models import AuditLogEntry


CSV_HEADERS = ("Timestamp", "Admin", "Action", "Target Type", "Target ID", "Details")
CSV_MEDIA_TYPE = "text/csv"


def entry_to_row(entry: AuditLogEntry) -> list[str]:
    return [
        entry.timestamp.isoformat(timespec="microseconds"),
        entry.admin_name,
        entry.action.label,
        entry.target_type.value,
        entry.target_id,
        entry.details,
    ]


def export_audit_csv(entries: Iterable[AuditLogEntry]) -> str:
    """Serialize entries, in the order given, to CSV text."""
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\n")

    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for entry in entries:
        writer.writerow(entry_to_row(entry))

    return buffer.getvalue()


def export_filename(day: date) -> str:
    """Download filename for an export taken on ``day``."""
    return f"audit-logs-{day.isoformat()}.csv"
