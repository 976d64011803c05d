# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Audit log store.

The only writer of the audit trail. Every privileged mutation routes through
``append``, optionally carrying its own statements so the mutation and its
entry land in one logged batch.

Entries are never updated or deleted.
"""

from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.audit.models import (
    AUDIT_BUCKET_SCOPE,
    AuditLogEntry,
    AuditLogEntryInput,
    bucket_for,
)
from src.audit.schemas import AuditPage, decode_cursor, encode_cursor
from src.core.errors import InvalidInputError
from src.core.logging import get_logger
from src.realtime.models import ChangeKind, EntityType


if TYPE_CHECKING:
    from src.core.database.store import StatementItem, StoreHandle
    from src.realtime.feed import ChangeFeed


logger = get_logger(__name__)


class AuditLogStore:
    """Append-only audit trail backed by Cassandra."""

    def __init__(
        self,
        store: "StoreHandle",
        feed: "ChangeFeed | None" = None,
        *,
        default_page_size: int = 50,
        max_page_size: int = 200,
    ) -> None:
        self.store = store
        self.keyspace = store.keyspace
        self.feed = feed
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_entry = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.audit_logs
            (bucket, timestamp, entry_id, admin_id, admin_name, action,
             target_type, target_id, details)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_bucket = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.audit_log_buckets (scope, bucket)
            VALUES (?, ?)
        """)

        self._list_buckets = self.store.prepare(f"""
            SELECT bucket FROM {self.keyspace}.audit_log_buckets
            WHERE scope = ?
        """)

        self._list_bucket = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.audit_logs
            WHERE bucket = ?
            LIMIT ?
        """)

        # Rows strictly older than the cursor, in clustering order
        self._list_bucket_before = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.audit_logs
            WHERE bucket = ? AND (timestamp, entry_id) < (?, ?)
            LIMIT ?
        """)

    # ==========================================================================
    # Append
    # ==========================================================================

    async def append(
        self,
        entry_input: AuditLogEntryInput,
        alongside: Sequence["StatementItem"] = (),
    ) -> AuditLogEntry:
        """Write an audit entry, with any companion mutations, atomically.

        Args:
            entry_input: The privileged action being recorded
            alongside: Statements that must land together with the entry

        Raises:
            StorageUnavailableError: If the batch could not be written; neither
                the entry nor the companion mutations were applied
        """
        entry = AuditLogEntry.from_input(entry_input)
        items: list[StatementItem] = [
            *alongside,
            (
                self._insert_entry,
                (
                    entry.bucket,
                    entry.timestamp,
                    entry.id,
                    entry.admin_id,
                    entry.admin_name,
                    entry.action.value,
                    entry.target_type.value,
                    entry.target_id,
                    entry.details,
                ),
            ),
            (self._insert_bucket, (AUDIT_BUCKET_SCOPE, entry.bucket)),
        ]

        try:
            await self.store.execute_batch(items)
        except Exception as e:
            logger.error(
                "audit_append_failed",
                action=entry.action.value,
                target_type=entry.target_type.value,
                target_id=entry.target_id,
                admin_id=entry.admin_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "audit_entry_appended",
            entry_id=str(entry.id),
            action=entry.action.value,
            target_type=entry.target_type.value,
            target_id=entry.target_id,
            admin_id=entry.admin_id,
        )

        if self.feed:
            await self.feed.publish(
                EntityType.AUDIT_ENTRY,
                str(entry.id),
                ChangeKind.CREATED,
                entry.to_dict(),
            )

        return entry

    # ==========================================================================
    # Read
    # ==========================================================================

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self.default_page_size
        if limit < 1:
            msg = "limit must be at least 1"
            raise InvalidInputError(msg)
        return min(limit, self.max_page_size)

    async def _fetch(
        self,
        count: int,
        before: tuple[datetime, UUID] | None,
    ) -> list[AuditLogEntry]:
        """Fetch up to ``count`` entries older than ``before``, newest first."""
        start_bucket = bucket_for(before[0]) if before else None
        buckets = await self.store.execute(self._list_buckets, (AUDIT_BUCKET_SCOPE,))

        entries: list[AuditLogEntry] = []
        for row in buckets:
            if start_bucket and row.bucket > start_bucket:
                continue

            remaining = count - len(entries)
            if before and row.bucket == start_bucket:
                rows = await self.store.execute(
                    self._list_bucket_before,
                    (row.bucket, before[0], before[1], remaining),
                )
            else:
                rows = await self.store.execute(self._list_bucket, (row.bucket, remaining))

            entries.extend(AuditLogEntry.from_row(r) for r in rows)
            if len(entries) >= count:
                break

        return entries[:count]

    async def list(
        self,
        limit: int | None = None,
        before: str | None = None,
    ) -> AuditPage:
        """List entries newest first.

        Args:
            limit: Page size (clamped to the configured maximum)
            before: Opaque cursor from a previous page

        Raises:
            InvalidInputError: If limit or cursor is invalid
        """
        page_size = self._page_size(limit)
        position = decode_cursor(before) if before else None

        entries = await self._fetch(page_size + 1, position)
        has_more = len(entries) > page_size
        items = entries[:page_size]

        next_cursor = None
        if has_more and items:
            last = items[-1]
            next_cursor = encode_cursor(last.timestamp, last.id)

        return AuditPage(items=items, next_cursor=next_cursor)

    async def iter_entries(
        self,
        page_size: int | None = None,
        before: str | None = None,
    ) -> AsyncIterator[AuditLogEntry]:
        """Iterate over every entry older than ``before``, newest first.

        Pages are fetched lazily. Each call starts a fresh traversal, and
        entries appended during iteration are not visited.
        """
        cursor = before
        while True:
            page = await self.list(limit=page_size, before=cursor)
            for entry in page.items:
                yield entry
            if not page.next_cursor:
                return
            cursor = page.next_cursor
