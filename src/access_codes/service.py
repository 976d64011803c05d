# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""AccessCode registry.

Business logic for:
- Issuing single-use codes (code row and audit entry land together)
- Redeeming codes exactly once under concurrent attempts
- Revoking active codes
- Looking codes up and listing them per course

Redemption and revocation are compare-and-set updates (``IF status =
'active'``); among concurrent writers exactly one is applied.
"""

import asyncio
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from src.access_codes.models import AccessCode, AccessCodeStatus, RedemptionResult
from src.access_codes.security import CODE_LENGTH, generate_code, normalize_code
from src.audit.models import AuditAction, AuditActor, AuditLogEntryInput, AuditTargetType
from src.core.errors import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    ConflictError,
    InvalidInputError,
    StorageUnavailableError,
)
from src.core.logging import get_logger
from src.utils.dates import utc_now


if TYPE_CHECKING:
    from src.audit.service import AuditLogStore
    from src.core.database.store import StoreHandle


logger = get_logger(__name__)

# Admin-chosen codes: letters and digits only
CUSTOM_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,32}$")

MAX_BULK_CODES = 100


class AccessCodeRegistry:
    """Service for access code lifecycle."""

    def __init__(
        self,
        store: "StoreHandle",
        audit: "AuditLogStore",
        *,
        code_length: int = CODE_LENGTH,
        max_generation_attempts: int = 10,
        default_expiry_days: int | None = None,
    ) -> None:
        self.store = store
        self.keyspace = store.keyspace
        self.audit = audit
        self.code_length = code_length
        self.max_generation_attempts = max_generation_attempts
        self.default_expiry_days = default_expiry_days
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_code = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.access_codes
            (code, course_id, issued_by, issued_at, expires_at, status,
             redeemed_by, redeemed_at, revoked_by, revoked_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_by_course = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.access_codes_by_course
            (course_id, code, issued_at)
            VALUES (?, ?, ?)
        """)

        self._get_code = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.access_codes
            WHERE code = ?
        """)

        self._list_by_course = self.store.prepare(f"""
            SELECT code FROM {self.keyspace}.access_codes_by_course
            WHERE course_id = ?
        """)

        # Compare-and-set transitions
        self._redeem_code = self.store.prepare(f"""
            UPDATE {self.keyspace}.access_codes
            SET status = 'redeemed', redeemed_by = ?, redeemed_at = ?
            WHERE code = ?
            IF status = 'active'
        """)

        self._revoke_code = self.store.prepare(f"""
            UPDATE {self.keyspace}.access_codes
            SET status = 'revoked', revoked_by = ?, revoked_at = ?
            WHERE code = ?
            IF status = 'active'
        """)

        # Compensation when the revocation audit entry cannot be written
        self._unrevoke_code = self.store.prepare(f"""
            UPDATE {self.keyspace}.access_codes
            SET status = 'active', revoked_by = null, revoked_at = null
            WHERE code = ?
            IF status = 'revoked'
        """)

    # ==========================================================================
    # Issue
    # ==========================================================================

    async def issue(
        self,
        course_id: str,
        issued_by: AuditActor,
        expires_at: datetime | None = None,
        code: str | None = None,
    ) -> AccessCode:
        """Issue an active code for a course.

        Args:
            course_id: Course the code enrolls into
            issued_by: Admin issuing the code
            expires_at: Optional expiry (defaults to the configured lifetime)
            code: Admin-chosen code; generated when omitted

        Raises:
            InvalidInputError: If course_id is empty, expiry is in the past,
                or a chosen code is malformed
            ConflictError: If a chosen code already exists
            StorageUnavailableError: If the code and its audit entry could
                not be written; neither exists afterwards
        """
        course_id = (course_id or "").strip()
        if not course_id:
            msg = "course_id is required"
            raise InvalidInputError(msg)

        now = utc_now()
        if expires_at is None and self.default_expiry_days:
            expires_at = now + timedelta(days=self.default_expiry_days)
        if expires_at is not None and expires_at <= now:
            msg = "expires_at must be in the future"
            raise InvalidInputError(msg)

        if code is None:
            code = await self._generate_unique_code()
        else:
            code = normalize_code(code)
            if not CUSTOM_CODE_PATTERN.match(code):
                msg = "Access codes must be 4-32 letters or digits"
                raise InvalidInputError(msg)
            if await self._fetch(code) is not None:
                msg = f"Access code {code} already exists"
                raise ConflictError(msg)

        access_code = AccessCode(
            code=code,
            course_id=course_id,
            issued_by=issued_by.id,
            issued_at=now,
            expires_at=expires_at,
        )

        await self.audit.append(
            AuditLogEntryInput(
                actor=issued_by,
                action=AuditAction.GENERATE_CODE,
                target_type=AuditTargetType.CODE,
                target_id=code,
                details=f"Generated access code for course {course_id}",
            ),
            alongside=[
                (
                    self._insert_code,
                    (
                        access_code.code,
                        access_code.course_id,
                        access_code.issued_by,
                        access_code.issued_at,
                        access_code.expires_at,
                        access_code.status.value,
                        None,
                        None,
                        None,
                        None,
                    ),
                ),
                (
                    self._insert_by_course,
                    (access_code.course_id, access_code.code, access_code.issued_at),
                ),
            ],
        )

        logger.info(
            "access_code_issued",
            access_code=code,
            course_id=course_id,
            issued_by=issued_by.id,
            expires_at=expires_at.isoformat() if expires_at else None,
        )

        return access_code

    async def issue_many(
        self,
        course_id: str,
        count: int,
        issued_by: AuditActor,
        expires_at: datetime | None = None,
    ) -> list[AccessCode]:
        """Issue several codes; each is audited individually.

        A failure stops issuance; codes issued before it remain valid.
        """
        if not 1 <= count <= MAX_BULK_CODES:
            msg = f"count must be between 1 and {MAX_BULK_CODES}"
            raise InvalidInputError(msg)

        return [
            await self.issue(course_id, issued_by, expires_at=expires_at)
            for _ in range(count)
        ]

    async def _generate_unique_code(self) -> str:
        """Generate a code not yet present in the registry.

        Raises:
            RuntimeError: If unable to generate a unique code
        """
        for _ in range(self.max_generation_attempts):
            code = generate_code(self.code_length)
            if await self._fetch(code) is None:
                return code

        msg = "Unable to generate unique access code after multiple attempts"
        raise RuntimeError(msg)

    # ==========================================================================
    # Redeem
    # ==========================================================================

    async def redeem(self, code: str, student_id: str) -> RedemptionResult:
        """Redeem an active code for a student.

        Safe to retry: if an earlier attempt by the same student was applied,
        the retry returns that redemption.

        Raises:
            InvalidInputError: If code or student_id is empty
            CodeNotFoundError: If the code is unknown
            CodeAlreadyUsedError: If the code was redeemed or revoked,
                including by a concurrent redeemer
            CodeExpiredError: If the code is past its expiry
        """
        code = normalize_code(code or "")
        if not code or not student_id:
            msg = "code and student_id are required"
            raise InvalidInputError(msg)

        access_code = await self._fetch(code)
        if access_code is None:
            logger.info("access_code_not_found", access_code=code, student_id=student_id)
            raise CodeNotFoundError
        if access_code.redeemed_by == student_id and access_code.redeemed_at:
            logger.info("access_code_redeem_replayed", access_code=code, student_id=student_id)
            return RedemptionResult(
                code=code,
                course_id=access_code.course_id,
                student_id=student_id,
                redeemed_at=access_code.redeemed_at,
            )
        self._ensure_redeemable(access_code)

        redeemed_at = utc_now()
        result = await self.store.execute(
            self._redeem_code,
            (student_id, redeemed_at, code),
        )

        if not result.was_applied:
            current = await self._fetch(code)
            if current and current.redeemed_by == student_id and current.redeemed_at:
                # An earlier attempt by this student was applied
                redeemed_at = current.redeemed_at
            else:
                logger.info(
                    "access_code_redeem_conflict",
                    access_code=code,
                    student_id=student_id,
                    current_status=current.status.value if current else None,
                )
                if current:
                    self._ensure_redeemable(current)
                raise CodeAlreadyUsedError

        logger.info(
            "access_code_redeemed",
            access_code=code,
            course_id=access_code.course_id,
            student_id=student_id,
        )

        return RedemptionResult(
            code=code,
            course_id=access_code.course_id,
            student_id=student_id,
            redeemed_at=redeemed_at,
        )

    @staticmethod
    def _ensure_redeemable(access_code: AccessCode) -> None:
        if access_code.status is AccessCodeStatus.EXPIRED:
            raise CodeExpiredError
        if access_code.status is not AccessCodeStatus.ACTIVE:
            raise CodeAlreadyUsedError

    # ==========================================================================
    # Revoke
    # ==========================================================================

    async def revoke(self, code: str, revoked_by: AuditActor) -> AccessCode:
        """Revoke an active code and record a ``revoke_code`` audit entry.

        Raises:
            CodeNotFoundError: If the code is unknown
            CodeAlreadyUsedError: If the code is already terminal
            StorageUnavailableError: If the audit entry could not be written;
                the revocation is rolled back
        """
        code = normalize_code(code or "")
        access_code = await self._fetch(code)
        if access_code is None:
            raise CodeNotFoundError
        if access_code.is_terminal:
            msg = f"This access code is already {access_code.status.value}."
            raise CodeAlreadyUsedError(msg)

        revoked_at = utc_now()
        result = await self.store.execute(
            self._revoke_code,
            (revoked_by.id, revoked_at, code),
        )
        if not result.was_applied:
            current = await self._fetch(code)
            status = current.status.value if current else "gone"
            msg = f"This access code is already {status}."
            raise CodeAlreadyUsedError(msg)

        try:
            await self.audit.append(
                AuditLogEntryInput(
                    actor=revoked_by,
                    action=AuditAction.REVOKE_CODE,
                    target_type=AuditTargetType.CODE,
                    target_id=code,
                    details=f"Revoked access code for course {access_code.course_id}",
                )
            )
        except StorageUnavailableError:
            await self._rollback_revoke(code)
            raise

        access_code.status = AccessCodeStatus.REVOKED
        access_code.revoked_by = revoked_by.id
        access_code.revoked_at = revoked_at

        logger.info(
            "access_code_revoked",
            access_code=code,
            course_id=access_code.course_id,
            revoked_by=revoked_by.id,
        )
        return access_code

    async def _rollback_revoke(self, code: str) -> None:
        try:
            await self.store.execute(self._unrevoke_code, (code,))
        except StorageUnavailableError:
            logger.exception("access_code_revoke_rollback_failed", access_code=code)
            raise
        logger.warning("access_code_revoke_rolled_back", access_code=code)

    # ==========================================================================
    # Read
    # ==========================================================================

    async def _fetch(self, code: str) -> AccessCode | None:
        result = await self.store.execute(self._get_code, (code,))
        row = result.one()
        if row is None:
            return None
        return AccessCode.from_row(row)

    async def get(self, code: str) -> AccessCode | None:
        """Get a code by value (case-insensitive)."""
        return await self._fetch(normalize_code(code or ""))

    async def list_for_course(self, course_id: str) -> list[AccessCode]:
        """List a course's codes, newest first."""
        rows = await self.store.execute(self._list_by_course, (course_id,))

        fetched = await asyncio.gather(*(self._fetch(row.code) for row in rows))
        codes = [access_code for access_code in fetched if access_code is not None]
        codes.sort(key=lambda c: c.issued_at, reverse=True)
        return codes
