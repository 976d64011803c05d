# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User account service.

Business logic for:
- Creating the account record on first authenticated use
- Self-service profile updates
- Admin suspension, unsuspension and deletion (audited)

Suspension and unsuspension are compare-and-set status changes followed by
their audit entry, rolled back if the entry cannot be written. Deleting an
account is written in the same logged batch as its audit entry and also
removes every enrollment of that user.
"""

from typing import TYPE_CHECKING, Any
from uuid import uuid1

from src.accounts.models import AccountStatus, UserAccount
from src.audit.models import AuditAction, AuditActor, AuditLogEntryInput, AuditTargetType
from src.auth.permissions import UserRole
from src.core.errors import (
    AccountNotFoundError,
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    StorageUnavailableError,
)
from src.core.logging import get_logger
from src.utils.dates import utc_now


if TYPE_CHECKING:
    from src.accounts.schemas import AccountProfileUpdate
    from src.audit.service import AuditLogStore
    from src.core.database.store import StoreHandle
    from src.enrollments.service import EnrollmentStore


logger = get_logger(__name__)

CONCURRENT_CHANGE_MESSAGE = "Account changed concurrently. Please try again."


class AccountStore:
    """Service for user accounts."""

    def __init__(
        self,
        store: "StoreHandle",
        audit: "AuditLogStore",
        enrollments: "EnrollmentStore",
    ) -> None:
        self.store = store
        self.keyspace = store.keyspace
        self.audit = audit
        self.enrollments = enrollments
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_account = self.store.prepare(f"""
            INSERT INTO {self.keyspace}.accounts
            (user_id, full_name, username, role, status, suspension_reason,
             suspended_at, suspended_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._get_account = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.accounts WHERE user_id = ?
        """)

        self._list_accounts = self.store.prepare(f"""
            SELECT * FROM {self.keyspace}.accounts
        """)

        self._update_profile = self.store.prepare(f"""
            UPDATE {self.keyspace}.accounts
            SET full_name = ?, username = ?, updated_at = ?
            WHERE user_id = ?
        """)

        # Status changes are compare-and-set; a missing row never matches
        self._suspend = self.store.prepare(f"""
            UPDATE {self.keyspace}.accounts
            SET status = 'suspended', suspension_reason = ?, suspended_at = ?,
                suspended_by = ?, updated_at = ?, status_change_id = ?
            WHERE user_id = ?
            IF status = 'active'
        """)

        self._unsuspend = self.store.prepare(f"""
            UPDATE {self.keyspace}.accounts
            SET status = 'active', suspension_reason = null, suspended_at = null,
                suspended_by = null, updated_at = ?, status_change_id = ?
            WHERE user_id = ?
            IF status = 'suspended' AND status_change_id = ?
        """)

        # Restores a suspension whose lifting could not be audited
        self._resuspend = self.store.prepare(f"""
            UPDATE {self.keyspace}.accounts
            SET status = 'suspended', suspension_reason = ?, suspended_at = ?,
                suspended_by = ?, updated_at = ?, status_change_id = ?
            WHERE user_id = ?
            IF status = 'active' AND status_change_id = ?
        """)

        self._delete_account = self.store.prepare(f"""
            DELETE FROM {self.keyspace}.accounts WHERE user_id = ?
        """)

    # ==========================================================================
    # Read
    # ==========================================================================

    async def get(self, user_id: str) -> UserAccount | None:
        """Get an account by user ID."""
        result = await self.store.execute(self._get_account, (user_id,))
        row = result.one()
        if row is None:
            return None
        return UserAccount.from_row(row)

    async def require(self, user_id: str) -> UserAccount:
        """Get an account or raise AccountNotFoundError."""
        account = await self.get(user_id)
        if account is None:
            raise AccountNotFoundError
        return account

    async def list_all(self) -> list[UserAccount]:
        """List every account, newest first."""
        rows = await self.store.execute(self._list_accounts)
        accounts = [UserAccount.from_row(row) for row in rows]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    # ==========================================================================
    # Self-service
    # ==========================================================================

    async def ensure_account(
        self,
        user_id: str,
        role: UserRole,
        full_name: str = "",
    ) -> UserAccount:
        """Return the user's account, creating it on first use."""
        existing = await self.get(user_id)
        if existing is not None:
            return existing

        account = UserAccount(user_id=user_id, full_name=full_name, role=role)
        result = await self.store.execute(
            self._insert_account,
            (
                account.user_id,
                account.full_name,
                account.username,
                account.role.value,
                account.status.value,
                None,
                None,
                None,
                account.created_at,
                None,
            ),
        )
        if not result.was_applied:
            # Created concurrently
            return await self.require(user_id)

        logger.info("account_created", user_id=user_id, role=role.value)
        return account

    async def update_profile(
        self, user_id: str, update: "AccountProfileUpdate"
    ) -> UserAccount:
        """Update the caller's own profile fields.

        Raises:
            AccountNotFoundError: If the account doesn't exist
        """
        account = await self.require(user_id)

        account.full_name = update.full_name
        if update.username is not None:
            account.username = update.username
        account.updated_at = utc_now()

        await self.store.execute(
            self._update_profile,
            (account.full_name, account.username, account.updated_at, user_id),
        )

        logger.info("account_profile_updated", user_id=user_id)
        return account

    # ==========================================================================
    # Admin actions
    # ==========================================================================

    async def suspend(
        self, user_id: str, reason: str, suspended_by: AuditActor
    ) -> UserAccount:
        """Suspend an active account and record a ``suspend_account`` entry.

        The status change is a compare-and-set on ``active``, so of two
        concurrent suspensions exactly one lands and is audited.

        Raises:
            InvalidInputError: If no reason is given
            AccountNotFoundError: If the account doesn't exist
            InvalidTransitionError: If it is already suspended
            StorageUnavailableError: If the audit entry could not be written;
                the suspension is rolled back
        """
        reason = (reason or "").strip()
        if not reason:
            msg = "A suspension reason is required"
            raise InvalidInputError(msg)

        account = await self.require(user_id)
        if account.is_suspended:
            msg = "Account is already suspended."
            raise InvalidTransitionError(msg)

        now, change_id = utc_now(), uuid1()
        result = await self.store.execute(
            self._suspend,
            (reason, now, suspended_by.id, now, change_id, user_id),
        )
        if not result.was_applied:
            current = await self.require(user_id)
            # An earlier attempt of this call may have landed
            if current.status_change_id != change_id:
                msg = "Account is already suspended."
                raise InvalidTransitionError(msg)

        try:
            await self.audit.append(
                AuditLogEntryInput(
                    actor=suspended_by,
                    action=AuditAction.SUSPEND_ACCOUNT,
                    target_type=AuditTargetType.USER,
                    target_id=user_id,
                    details=f"Suspended account. Reason: {reason}",
                )
            )
        except StorageUnavailableError:
            await self._rollback_status(
                user_id,
                "suspend",
                self._unsuspend,
                (account.updated_at, account.status_change_id, user_id, change_id),
            )
            raise

        account.status = AccountStatus.SUSPENDED
        account.suspension_reason = reason
        account.suspended_at = now
        account.suspended_by = suspended_by.id
        account.updated_at = now
        account.status_change_id = change_id

        logger.info("account_suspended", user_id=user_id, suspended_by=suspended_by.id)
        return account

    async def unsuspend(self, user_id: str, unsuspended_by: AuditActor) -> UserAccount:
        """Lift a suspension and record an ``unsuspend_account`` entry.

        Conditioned on the very suspension that was read, so a suspension
        lifted and re-imposed meanwhile is left alone.

        Raises:
            AccountNotFoundError: If the account doesn't exist
            InvalidTransitionError: If it is not suspended
            ConflictError: If it was re-suspended concurrently
            StorageUnavailableError: If the audit entry could not be written;
                the suspension is restored
        """
        account = await self.require(user_id)
        if not account.is_suspended:
            msg = "Account is not suspended."
            raise InvalidTransitionError(msg)

        now, change_id = utc_now(), uuid1()
        result = await self.store.execute(
            self._unsuspend,
            (now, change_id, user_id, account.status_change_id),
        )
        if not result.was_applied:
            current = await self.require(user_id)
            # An earlier attempt of this call may have landed
            if current.status_change_id != change_id:
                if current.is_suspended:
                    raise ConflictError(CONCURRENT_CHANGE_MESSAGE)
                msg = "Account is not suspended."
                raise InvalidTransitionError(msg)

        try:
            await self.audit.append(
                AuditLogEntryInput(
                    actor=unsuspended_by,
                    action=AuditAction.UNSUSPEND_ACCOUNT,
                    target_type=AuditTargetType.USER,
                    target_id=user_id,
                    details="Unsuspended account",
                )
            )
        except StorageUnavailableError:
            await self._rollback_status(
                user_id,
                "unsuspend",
                self._resuspend,
                (
                    account.suspension_reason,
                    account.suspended_at,
                    account.suspended_by,
                    account.updated_at,
                    account.status_change_id,
                    user_id,
                    change_id,
                ),
            )
            raise

        account.status = AccountStatus.ACTIVE
        account.suspension_reason = None
        account.suspended_at = None
        account.suspended_by = None
        account.updated_at = now
        account.status_change_id = change_id

        logger.info("account_unsuspended", user_id=user_id, unsuspended_by=unsuspended_by.id)
        return account

    async def _rollback_status(
        self, user_id: str, action: str, statement: Any, params: tuple
    ) -> None:
        """Undo a status change whose audit entry could not be written.

        Conditioned on the change still being in place; a later change by
        someone else is kept.
        """
        try:
            result = await self.store.execute(statement, params)
        except StorageUnavailableError:
            logger.exception(
                "account_status_rollback_failed", user_id=user_id, action=action
            )
            raise
        if result.was_applied:
            logger.warning("account_status_rolled_back", user_id=user_id, action=action)
        else:
            logger.error(
                "account_status_rollback_superseded", user_id=user_id, action=action
            )

    async def delete(self, user_id: str, deleted_by: AuditActor) -> int:
        """Delete an account and every enrollment of that user.

        Returns:
            Number of enrollments removed

        Raises:
            AccountNotFoundError: If the account doesn't exist
            StorageUnavailableError: If the deletion could not be written;
                nothing was removed
        """
        await self.require(user_id)
        records, statements = await self.enrollments.deletion_statements(user_id)

        await self.audit.append(
            AuditLogEntryInput(
                actor=deleted_by,
                action=AuditAction.DELETE_ACCOUNT,
                target_type=AuditTargetType.USER,
                target_id=user_id,
                details=(
                    f"Deleted user account and {len(records)} enrollment(s)"
                ),
            ),
            alongside=[(self._delete_account, (user_id,)), *statements],
        )

        logger.info(
            "account_deleted",
            user_id=user_id,
            deleted_by=deleted_by.id,
            enrollments_removed=len(records),
        )
        await self.enrollments.publish_deleted(records)
        return len(records)
