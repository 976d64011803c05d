# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Enrollment record store.

Business logic for:
- Creating enrollments (one per student and course)
- Payment status updates from the payment provider
- Manual verification and admin resets
- Per-student and per-course listings, course statistics

Every state change is a compare-and-set on the record version just read,
never a blind overwrite, so concurrent writers (payment callback,
coordinator, admin) are linearized per record. Committed changes are
published to the change feed as full, versioned record snapshots.
"""

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

from src.audit.models import AuditAction, AuditActor, AuditLogEntryInput, AuditTargetType
from src.core.errors import (
    ConflictError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    StorageUnavailableError,
)
from src.core.logging import get_logger
from src.enrollments.models import (
    CodeSource,
    CourseStatistics,
    DirectPaymentSource,
    EnrollmentRecord,
    EnrollmentSource,
    PaymentStatus,
    can_transition,
)
from src.realtime.models import ChangeKind, EntityType
from src.utils.dates import utc_now


if TYPE_CHECKING:
    from cassandra.query import PreparedStatement

    from src.audit.service import AuditLogStore
    from src.core.database.store import StatementItem, StoreHandle
    from src.realtime.feed import ChangeFeed


logger = get_logger(__name__)

# Compare-and-set attempts before giving up on a contended record
CAS_ATTEMPTS = 5

CONCURRENT_CHANGE_MESSAGE = "Enrollment changed concurrently. Please try again."


def _same_attempt(existing: EnrollmentRecord, attempted: EnrollmentRecord) -> bool:
    """Whether a stored record was written by this very create call."""
    return (
        existing.enrolled_at == attempted.enrolled_at
        and existing.enrollment_code == attempted.enrollment_code
        and existing.payment_reference == attempted.payment_reference
    )


class EnrollmentStore:
    """Service for enrollment records."""

    def __init__(
        self,
        store: "StoreHandle",
        audit: "AuditLogStore",
        feed: "ChangeFeed | None" = None,
    ) -> None:
        self.store = store
        self.keyspace = store.keyspace
        self.audit = audit
        self.feed = feed
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_enrollment = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (student_id, course_id, enrollment_code, payment_status,
             payment_reference, verified, verified_at, verified_by,
             enrolled_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._insert_by_course = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_course
            (course_id, student_id, enrolled_at)
            VALUES (?, ?, ?)
        """)

        self._get_enrollment = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE student_id = ? AND course_id = ?
        """)

        self._list_by_student = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE student_id = ?
        """)

        self._list_by_course = self.store.prepare(f"""
            SELECT student_id FROM {self.keyspace}.enrollments_by_course
            WHERE course_id = ?
        """)

        # Compare-and-set transitions, conditioned on the version read
        self._update_payment = self.store.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET payment_status = ?, payment_reference = ?, updated_at = ?, version = ?
            WHERE student_id = ? AND course_id = ?
            IF version = ?
        """)

        self._verify = self.store.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET verified = true, verified_at = ?, verified_by = ?,
                updated_at = ?, version = ?
            WHERE student_id = ? AND course_id = ?
            IF version = ?
        """)

        self._reset = self.store.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET verified = false, verified_at = null, verified_by = null,
                payment_status = 'pending', updated_at = ?, version = ?
            WHERE student_id = ? AND course_id = ?
            IF version = ?
        """)

        # Compensation when the reset audit entry cannot be written
        self._restore = self.store.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET verified = ?, verified_at = ?, verified_by = ?,
                payment_status = ?, updated_at = ?, version = ?
            WHERE student_id = ? AND course_id = ?
            IF version = ?
        """)

        self._delete_for_student = self.store.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments
            WHERE student_id = ?
        """)

        self._delete_by_course = self.store.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_course
            WHERE course_id = ? AND student_id = ?
        """)

    async def _publish(self, kind: ChangeKind, record: EnrollmentRecord) -> None:
        if self.feed:
            await self.feed.publish(
                EntityType.ENROLLMENT,
                record.key,
                kind,
                record.to_dict(),
                version=record.version,
            )

    async def _require(self, student_id: str, course_id: str) -> EnrollmentRecord:
        record = await self.get(student_id, course_id)
        if record is None:
            raise EnrollmentNotFoundError
        return record

    async def _compare_and_set(
        self,
        statement: "PreparedStatement",
        values: tuple,
        current: EnrollmentRecord,
        updated: EnrollmentRecord,
    ) -> tuple[bool, EnrollmentRecord | None]:
        """Write ``updated`` if the row is still at ``current``'s version.

        ``values`` are the statement's leading SET parameters; ``updated_at``
        and ``version`` follow them. Returns whether the write landed and
        the row as it now stands. A timed-out attempt that did apply is
        recognised on the re-read, as the row then equals ``updated``.
        """
        result = await self.store.execute(
            statement,
            (
                *values,
                updated.updated_at,
                updated.version,
                current.student_id,
                current.course_id,
                current.version,
            ),
        )
        if result.was_applied:
            return True, updated

        observed = await self.get(current.student_id, current.course_id)
        return observed == updated, observed

    # ==========================================================================
    # Create
    # ==========================================================================

    async def create(
        self,
        student_id: str,
        course_id: str,
        source: EnrollmentSource,
    ) -> EnrollmentRecord:
        """Create an enrollment in ``pending``, unverified state.

        Raises:
            InvalidInputError: If an id is empty or the source is unknown
            DuplicateEnrollmentError: If the pair is already enrolled
        """
        if not student_id or not course_id:
            msg = "student_id and course_id are required"
            raise InvalidInputError(msg)

        if isinstance(source, CodeSource):
            enrollment_code, payment_reference = source.code, None
        elif isinstance(source, DirectPaymentSource):
            enrollment_code, payment_reference = None, source.payment_reference
        else:
            msg = f"Unknown enrollment source: {type(source).__name__}"
            raise InvalidInputError(msg)

        now = utc_now()
        record = EnrollmentRecord(
            student_id=student_id,
            course_id=course_id,
            enrollment_code=enrollment_code,
            payment_reference=payment_reference,
            enrolled_at=now,
            updated_at=now,
        )

        result = await self.store.execute(
            self._insert_enrollment,
            (
                record.student_id,
                record.course_id,
                record.enrollment_code,
                record.payment_status.value,
                record.payment_reference,
                record.verified,
                record.verified_at,
                record.verified_by,
                record.enrolled_at,
                record.updated_at,
                record.version,
            ),
        )

        if not result.was_applied:
            existing = await self.get(student_id, course_id)
            if existing is None or not _same_attempt(existing, record):
                if existing is not None:
                    # Keep the course listing in step with the record
                    await self.store.execute(
                        self._insert_by_course,
                        (course_id, student_id, existing.enrolled_at),
                    )
                logger.info(
                    "enrollment_duplicate",
                    student_id=student_id,
                    course_id=course_id,
                )
                raise DuplicateEnrollmentError
            # An earlier attempt of this call was applied
            record = existing

        await self.store.execute(
            self._insert_by_course,
            (course_id, student_id, record.enrolled_at),
        )

        logger.info(
            "enrollment_created",
            student_id=student_id,
            course_id=course_id,
            source="code" if enrollment_code else "direct_payment",
        )
        await self._publish(ChangeKind.CREATED, record)
        return record

    # ==========================================================================
    # Payment status
    # ==========================================================================

    async def update_payment_status(
        self,
        student_id: str,
        course_id: str,
        status: PaymentStatus | str,
        payment_reference: str | None = None,
    ) -> EnrollmentRecord:
        """Apply a payment status reported by the payment provider.

        Never touches ``verified``. Same-status updates are no-ops.

        Raises:
            InvalidInputError: If the status is unknown
            EnrollmentNotFoundError: If no record exists
            InvalidTransitionError: If the change is not allowed (e.g.
                completed -> pending)
            ConflictError: If the record kept changing underneath the update
        """
        target = PaymentStatus.parse(status)

        record = await self._require(student_id, course_id)
        for _ in range(CAS_ATTEMPTS):
            if record.payment_status is target:
                return record

            if not can_transition(record.payment_status, target):
                logger.warning(
                    "payment_transition_rejected",
                    student_id=student_id,
                    course_id=course_id,
                    current=record.payment_status.value,
                    requested=target.value,
                )
                msg = (
                    f"Payment status cannot change from "
                    f"{record.payment_status.value} to {target.value}."
                )
                raise InvalidTransitionError(msg)

            updated = replace(
                record,
                payment_status=target,
                payment_reference=payment_reference or record.payment_reference,
                updated_at=utc_now(),
                version=record.version + 1,
            )
            applied, observed = await self._compare_and_set(
                self._update_payment,
                (updated.payment_status.value, updated.payment_reference),
                record,
                updated,
            )
            if applied:
                logger.info(
                    "payment_status_updated",
                    student_id=student_id,
                    course_id=course_id,
                    previous=record.payment_status.value,
                    current=target.value,
                    version=updated.version,
                )
                await self._publish(ChangeKind.UPDATED, updated)
                return updated

            if observed is None:
                raise EnrollmentNotFoundError
            record = observed

        raise ConflictError(CONCURRENT_CHANGE_MESSAGE)

    # ==========================================================================
    # Verification
    # ==========================================================================

    async def verify(
        self,
        student_id: str,
        course_id: str,
        verified_by: str,
    ) -> EnrollmentRecord:
        """Mark an enrollment verified. Idempotent.

        Verifying an already verified record returns it unchanged.

        Raises:
            EnrollmentNotFoundError: If no record exists
            ConflictError: If the record kept changing underneath the update
        """
        record = await self._require(student_id, course_id)
        for _ in range(CAS_ATTEMPTS):
            if record.verified:
                logger.info(
                    "enrollment_already_verified",
                    student_id=student_id,
                    course_id=course_id,
                )
                return record

            now = utc_now()
            updated = replace(
                record,
                verified=True,
                verified_at=now,
                verified_by=verified_by,
                updated_at=now,
                version=record.version + 1,
            )
            applied, observed = await self._compare_and_set(
                self._verify, (now, verified_by), record, updated
            )
            if applied:
                logger.info(
                    "enrollment_verified",
                    student_id=student_id,
                    course_id=course_id,
                    verified_by=verified_by,
                    payment_status=updated.payment_status.value,
                    version=updated.version,
                )
                await self._publish(ChangeKind.UPDATED, updated)
                return updated

            if observed is None:
                raise EnrollmentNotFoundError
            record = observed

        raise ConflictError(CONCURRENT_CHANGE_MESSAGE)

    async def reset_account(
        self,
        student_id: str,
        course_id: str,
        reset_by: AuditActor,
    ) -> EnrollmentRecord:
        """Clear verification and return payment to ``pending``.

        Always records one ``reset_account`` audit entry. If the entry cannot
        be written, the previous state is restored and the error surfaces.

        Raises:
            EnrollmentNotFoundError: If no record exists
            ConflictError: If the record kept changing underneath the reset
            StorageUnavailableError: If the audit entry could not be written
        """
        before = await self._require(student_id, course_id)
        for _ in range(CAS_ATTEMPTS):
            record = replace(
                before,
                verified=False,
                verified_at=None,
                verified_by=None,
                payment_status=PaymentStatus.PENDING,
                updated_at=utc_now(),
                version=before.version + 1,
            )
            applied, observed = await self._compare_and_set(
                self._reset, (), before, record
            )
            if applied:
                break
            if observed is None:
                raise EnrollmentNotFoundError
            before = observed
        else:
            raise ConflictError(CONCURRENT_CHANGE_MESSAGE)

        try:
            await self.audit.append(
                AuditLogEntryInput(
                    actor=reset_by,
                    action=AuditAction.RESET_ACCOUNT,
                    target_type=AuditTargetType.ENROLLMENT,
                    target_id=before.key,
                    details=(
                        f"Reset enrollment in course {course_id}: verification "
                        f"cleared, payment status {before.payment_status.value} "
                        f"-> pending"
                    ),
                )
            )
        except StorageUnavailableError:
            await self._restore_after_failed_reset(before, record)
            raise

        logger.info(
            "enrollment_reset",
            student_id=student_id,
            course_id=course_id,
            reset_by=reset_by.id,
            was_verified=before.verified,
            previous_payment_status=before.payment_status.value,
            version=record.version,
        )
        await self._publish(ChangeKind.UPDATED, record)
        return record

    async def _restore_after_failed_reset(
        self, before: EnrollmentRecord, reset: EnrollmentRecord
    ) -> None:
        """Undo a reset whose audit entry could not be written.

        The full previous state is written back while the row is still at the
        reset's version. If another writer got in first, only the cleared
        verification is restored, on top of whatever that writer left.
        """
        current: EnrollmentRecord | None = reset
        target = replace(before, updated_at=utc_now(), version=reset.version + 1)

        for _ in range(CAS_ATTEMPTS):
            try:
                applied, current = await self._compare_and_set(
                    self._restore,
                    (
                        target.verified,
                        target.verified_at,
                        target.verified_by,
                        target.payment_status.value,
                    ),
                    current,
                    target,
                )
            except StorageUnavailableError:
                logger.exception(
                    "enrollment_reset_rollback_failed",
                    student_id=before.student_id,
                    course_id=before.course_id,
                )
                raise

            if applied:
                logger.warning(
                    "enrollment_reset_rolled_back",
                    student_id=before.student_id,
                    course_id=before.course_id,
                    version=target.version,
                )
                await self._publish(ChangeKind.UPDATED, target)
                return

            if current is None or current.verified or not before.verified:
                # Deleted, verified again, or nothing beyond payment to restore
                logger.warning(
                    "enrollment_reset_rollback_superseded",
                    student_id=before.student_id,
                    course_id=before.course_id,
                )
                return

            target = replace(
                current,
                verified=True,
                verified_at=before.verified_at,
                verified_by=before.verified_by,
                updated_at=utc_now(),
                version=current.version + 1,
            )

        logger.error(
            "enrollment_reset_unrecovered",
            student_id=before.student_id,
            course_id=before.course_id,
            verified_at=before.verified_at.isoformat() if before.verified_at else None,
            verified_by=before.verified_by,
        )

    # ==========================================================================
    # Read
    # ==========================================================================

    async def get(self, student_id: str, course_id: str) -> EnrollmentRecord | None:
        """Get the enrollment for a (student, course) pair."""
        result = await self.store.execute(self._get_enrollment, (student_id, course_id))
        row = result.one()
        if row is None:
            return None
        return EnrollmentRecord.from_row(row)

    async def list_for_student(self, student_id: str) -> list[EnrollmentRecord]:
        """List a student's enrollments, newest first."""
        rows = await self.store.execute(self._list_by_student, (student_id,))
        records = [EnrollmentRecord.from_row(row) for row in rows]
        records.sort(key=lambda r: r.enrolled_at, reverse=True)
        return records

    async def list_for_course(self, course_id: str) -> list[EnrollmentRecord]:
        """List a course's enrollments, newest first."""
        rows = await self.store.execute(self._list_by_course, (course_id,))

        fetched = await asyncio.gather(
            *(self.get(row.student_id, course_id) for row in rows)
        )
        records = [record for record in fetched if record is not None]
        records.sort(key=lambda r: r.enrolled_at, reverse=True)
        return records

    async def course_statistics(self, course_id: str) -> CourseStatistics:
        """Aggregate enrollment state for a coordinator dashboard."""
        records = await self.list_for_course(course_id)
        return CourseStatistics(
            course_id=course_id,
            total=len(records),
            verified=sum(1 for r in records if r.verified),
            pending=sum(1 for r in records if r.payment_status is PaymentStatus.PENDING),
            completed=sum(
                1 for r in records if r.payment_status is PaymentStatus.COMPLETED
            ),
            failed=sum(1 for r in records if r.payment_status is PaymentStatus.FAILED),
            awaiting_review=sum(1 for r in records if r.awaiting_review),
        )

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def deletion_statements(
        self, student_id: str
    ) -> tuple[list[EnrollmentRecord], list["StatementItem"]]:
        """Statements removing every enrollment of a student.

        Returned for inclusion in a caller's batch; call ``publish_deleted``
        once that batch has been written.
        """
        records = await self.list_for_student(student_id)
        statements: list[StatementItem] = [(self._delete_for_student, (student_id,))]
        statements.extend(
            (self._delete_by_course, (record.course_id, student_id)) for record in records
        )
        return records, statements

    async def publish_deleted(self, records: list[EnrollmentRecord]) -> None:
        """Publish deletion snapshots for records removed by a batch."""
        for record in records:
            await self._publish(ChangeKind.DELETED, record)

    async def delete_for_student(self, student_id: str) -> list[EnrollmentRecord]:
        """Remove every enrollment of a student."""
        records, statements = await self.deletion_statements(student_id)
        await self.store.execute_batch(statements)

        logger.info(
            "enrollments_deleted",
            student_id=student_id,
            count=len(records),
        )
        await self.publish_deleted(records)
        return records
