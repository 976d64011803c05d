"""Privileged admin actions.

Every action checks the caller's role before touching anything. A denied
action is logged and raises ``PermissionDeniedError`` without an audit entry;
a successful one produces exactly one audit entry (bulk issuance produces one
per code).

Verification is open to coordinators as well as admins.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from src.audit.models import AuditActor
from src.auth.permissions import UserRole, ensure_permission
from src.core.logging import get_logger


if TYPE_CHECKING:
    from src.access_codes.models import AccessCode
    from src.access_codes.service import AccessCodeRegistry
    from src.accounts.models import UserAccount
    from src.accounts.service import AccountStore
    from src.auth.schemas import Principal
    from src.enrollments.models import EnrollmentRecord
    from src.enrollments.service import EnrollmentStore


logger = get_logger(__name__)


def actor_for(principal: "Principal") -> AuditActor:
    """Audit identity of a principal; falls back to the id for unnamed users."""
    return AuditActor(id=principal.id, name=principal.name or principal.id)


class AdminActionService:
    """Role-checked entry point for privileged actions."""

    def __init__(
        self,
        codes: "AccessCodeRegistry",
        enrollments: "EnrollmentStore",
        accounts: "AccountStore",
    ) -> None:
        self.codes = codes
        self.enrollments = enrollments
        self.accounts = accounts

    @staticmethod
    def _authorize(
        principal: "Principal", operation: str, required_role: UserRole = UserRole.ADMIN
    ) -> AuditActor:
        ensure_permission(principal.id, principal.role, required_role, operation)
        return actor_for(principal)

    # ==========================================================================
    # Access codes
    # ==========================================================================

    async def generate_code(
        self,
        principal: "Principal",
        course_id: str,
        expires_at: datetime | None = None,
        code: str | None = None,
    ) -> "AccessCode":
        """Issue one access code."""
        actor = self._authorize(principal, "generate_code")
        return await self.codes.issue(course_id, actor, expires_at=expires_at, code=code)

    async def generate_codes(
        self,
        principal: "Principal",
        course_id: str,
        count: int,
        expires_at: datetime | None = None,
    ) -> list["AccessCode"]:
        """Issue ``count`` generated access codes."""
        actor = self._authorize(principal, "generate_code")
        issued = await self.codes.issue_many(course_id, count, actor, expires_at=expires_at)
        logger.info(
            "access_codes_bulk_issued",
            course_id=course_id,
            count=len(issued),
            issued_by=actor.id,
        )
        return issued

    async def revoke_code(self, principal: "Principal", code: str) -> "AccessCode":
        """Revoke an active access code."""
        actor = self._authorize(principal, "revoke_code")
        return await self.codes.revoke(code, actor)

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def verify_enrollment(
        self, principal: "Principal", student_id: str, course_id: str
    ) -> "EnrollmentRecord":
        """Mark an enrollment verified (coordinator or admin)."""
        actor = self._authorize(principal, "verify_enrollment", UserRole.COORDINATOR)
        return await self.enrollments.verify(student_id, course_id, verified_by=actor.id)

    async def reset_enrollment(
        self, principal: "Principal", student_id: str, course_id: str
    ) -> "EnrollmentRecord":
        """Clear verification and return payment to pending."""
        actor = self._authorize(principal, "reset_account")
        return await self.enrollments.reset_account(student_id, course_id, actor)

    # ==========================================================================
    # Accounts
    # ==========================================================================

    async def list_accounts(self, principal: "Principal") -> list["UserAccount"]:
        self._authorize(principal, "list_accounts")
        return await self.accounts.list_all()

    async def suspend_account(
        self, principal: "Principal", user_id: str, reason: str
    ) -> "UserAccount":
        actor = self._authorize(principal, "suspend_account")
        return await self.accounts.suspend(user_id, reason, actor)

    async def unsuspend_account(self, principal: "Principal", user_id: str) -> "UserAccount":
        actor = self._authorize(principal, "unsuspend_account")
        return await self.accounts.unsuspend(user_id, actor)

    async def delete_account(self, principal: "Principal", user_id: str) -> int:
        """Delete an account and its enrollments; returns enrollments removed."""
        actor = self._authorize(principal, "delete_account")
        return await self.accounts.delete(user_id, actor)
