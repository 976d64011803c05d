"""Tests for role-checked admin actions.

Every successful privileged action leaves exactly one audit entry; a denied
one leaves none and changes nothing.
"""

import pytest

from src.admin.service import actor_for
from src.auth.permissions import UserRole
from src.auth.schemas import Principal
from src.core.errors import PermissionDeniedError
from src.enrollments.models import DirectPaymentSource


class TestActorFor:
    def test_uses_display_name(self, admin) -> None:
        assert actor_for(admin).name == "Ada Admin"

    def test_falls_back_to_id(self) -> None:
        principal = Principal(id="admin-2", role=UserRole.ADMIN)
        assert actor_for(principal).name == "admin-2"


class TestAuditCompleteness:
    """One audit entry per successful action."""

    @pytest.mark.asyncio
    async def test_generate_code(self, admin_service, admin, store) -> None:
        access_code = await admin_service.generate_code(admin, "C1")

        entries = store.rows("audit_logs")
        assert len(entries) == 1
        assert entries[0]["target_id"] == access_code.code
        assert entries[0]["admin_id"] == "admin-1"
        assert entries[0]["admin_name"] == "Ada Admin"

    @pytest.mark.asyncio
    async def test_generate_codes_one_entry_each(
        self, admin_service, admin, store
    ) -> None:
        issued = await admin_service.generate_codes(admin, "C1", 4)

        assert len(issued) == 4
        assert len(store.rows("audit_logs")) == 4

    @pytest.mark.asyncio
    async def test_revoke_code(self, admin_service, admin, store) -> None:
        await admin_service.generate_code(admin, "C1", code="ABC123")

        await admin_service.revoke_code(admin, "ABC123")

        assert len(store.rows("audit_logs")) == 2

    @pytest.mark.asyncio
    async def test_reset_enrollment(self, admin_service, admin, enrollments, store) -> None:
        await enrollments.create("S1", "C1", DirectPaymentSource())

        await admin_service.reset_enrollment(admin, "S1", "C1")

        assert [e["action"] for e in store.rows("audit_logs")] == ["reset_account"]

    @pytest.mark.asyncio
    async def test_account_lifecycle(self, admin_service, admin, accounts, store) -> None:
        await accounts.ensure_account("S1", UserRole.STUDENT)

        await admin_service.suspend_account(admin, "S1", "Chargeback")
        await admin_service.unsuspend_account(admin, "S1")
        removed = await admin_service.delete_account(admin, "S1")

        assert removed == 0
        actions = sorted(e["action"] for e in store.rows("audit_logs"))
        assert actions == ["delete_account", "suspend_account", "unsuspend_account"]

    @pytest.mark.asyncio
    async def test_list_accounts(self, admin_service, admin, accounts) -> None:
        await accounts.ensure_account("S1", UserRole.STUDENT)
        await accounts.ensure_account("S2", UserRole.STUDENT)

        listed = await admin_service.list_accounts(admin)

        assert {a.user_id for a in listed} == {"S1", "S2"}


class TestDenials:
    """Insufficient roles are rejected before any change."""

    @pytest.mark.asyncio
    async def test_coordinator_cannot_generate_codes(
        self, admin_service, coordinator, store
    ) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            await admin_service.generate_code(coordinator, "C1")

        assert exc_info.value.status_code == 403
        assert store.rows("audit_logs") == []
        assert store.rows("access_codes") == []

    @pytest.mark.asyncio
    async def test_student_cannot_revoke(self, admin_service, admin, student, store) -> None:
        await admin_service.generate_code(admin, "C1", code="ABC123")

        with pytest.raises(PermissionDeniedError):
            await admin_service.revoke_code(student, "ABC123")

        assert store.row("access_codes", "ABC123")["status"] == "active"
        assert len(store.rows("audit_logs")) == 1

    @pytest.mark.asyncio
    async def test_coordinator_cannot_reset(
        self, admin_service, coordinator, enrollments, store
    ) -> None:
        await enrollments.create("S1", "C1", DirectPaymentSource())
        await enrollments.verify("S1", "C1", verified_by="coord-1")

        with pytest.raises(PermissionDeniedError):
            await admin_service.reset_enrollment(coordinator, "S1", "C1")

        assert (await enrollments.get("S1", "C1")).verified is True
        assert store.rows("audit_logs") == []

    @pytest.mark.asyncio
    async def test_coordinator_cannot_suspend(
        self, admin_service, coordinator, accounts, store
    ) -> None:
        await accounts.ensure_account("S1", UserRole.STUDENT)

        with pytest.raises(PermissionDeniedError):
            await admin_service.suspend_account(coordinator, "S1", "Chargeback")

        assert not (await accounts.get("S1")).is_suspended
        assert store.rows("audit_logs") == []

    @pytest.mark.asyncio
    async def test_student_cannot_verify(self, admin_service, student, enrollments) -> None:
        await enrollments.create("S1", "C1", DirectPaymentSource())

        with pytest.raises(PermissionDeniedError):
            await admin_service.verify_enrollment(student, "S1", "C1")

        assert (await enrollments.get("S1", "C1")).verified is False


class TestVerification:
    @pytest.mark.asyncio
    async def test_coordinator_can_verify(
        self, admin_service, coordinator, enrollments
    ) -> None:
        await enrollments.create("S1", "C1", DirectPaymentSource())

        record = await admin_service.verify_enrollment(coordinator, "S1", "C1")

        assert record.verified is True
        assert record.verified_by == "coord-1"
