"""HTTP API tests over the real app, with services on the in-memory store."""

import pytest

from src.auth.permissions import UserRole
from src.auth.schemas import Principal


API_KEY = {"X-API-Key": "test-master-api-key"}


@pytest.fixture
def course_code(client, admin, auth_headers) -> str:
    response = client.post(
        "/v1/admin/access-codes",
        json={"course_id": "C1", "code": "ABC123"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    return response.json()["items"][0]["code"]


class TestAuthentication:
    def test_missing_token(self, client) -> None:
        response = client.get("/v1/enrollments/me")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] is True

    def test_invalid_token(self, client) -> None:
        response = client.get(
            "/v1/enrollments/me", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401


class TestEnrollmentFlow:
    """Redeem, pay, verify, access."""

    def test_code_enrollment_requires_verification(
        self, client, course_code, student, coordinator, auth_headers
    ) -> None:
        redeemed = client.post(
            "/v1/enrollments/redeem",
            json={"code": course_code.lower()},
            headers=auth_headers(student),
        )
        assert redeemed.status_code == 201
        assert redeemed.json()["verified"] is False
        assert redeemed.json()["payment_status"] == "pending"

        access = client.get("/v1/enrollments/access/C1", headers=auth_headers(student))
        assert access.json() == {
            "has_access": False,
            "is_enrolled": True,
            "verified": False,
            "payment_status": "pending",
        }

        gated = client.get("/v1/enrollments/content/C1", headers=auth_headers(student))
        assert gated.status_code == 402
        body = gated.json()
        assert body["error"] is True
        assert body["code"] == "payment_not_verified"
        assert body["retryable"] is False
        assert body["message"]

        paid = client.post(
            "/v1/integrations/payments",
            json={"student_id": "S1", "course_id": "C1", "payment_status": "completed"},
            headers=API_KEY,
        )
        assert paid.status_code == 200
        assert paid.json()["verified"] is False
        assert (
            client.get("/v1/enrollments/content/C1", headers=auth_headers(student))
        ).status_code == 402

        stats = client.get(
            "/v1/enrollments/courses/C1/statistics", headers=auth_headers(coordinator)
        )
        assert stats.json()["awaiting_review"] == 1

        verified = client.post(
            "/v1/admin/enrollments/S1/C1/verify", headers=auth_headers(coordinator)
        )
        assert verified.status_code == 200
        assert verified.json()["verified_by"] == "coord-1"

        content = client.get("/v1/enrollments/content/C1", headers=auth_headers(student))
        assert content.status_code == 200

    def test_used_code_conflicts(self, client, course_code, student, auth_headers) -> None:
        other = Principal(id="S2", role=UserRole.STUDENT)
        client.post(
            "/v1/enrollments/redeem",
            json={"code": course_code},
            headers=auth_headers(student),
        )

        response = client.post(
            "/v1/enrollments/redeem",
            json={"code": course_code},
            headers=auth_headers(other),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "code_already_used"

    def test_unknown_code(self, client, student, auth_headers) -> None:
        response = client.post(
            "/v1/enrollments/redeem", json={"code": "NOPE99"}, headers=auth_headers(student)
        )

        assert response.status_code == 404
        assert response.json()["code"] == "code_not_found"

    def test_direct_enrollment_and_listing(self, client, student, auth_headers) -> None:
        created = client.post(
            "/v1/enrollments",
            json={"course_id": "C9", "payment_reference": "pay_9"},
            headers=auth_headers(student),
        )
        assert created.status_code == 201

        duplicate = client.post(
            "/v1/enrollments", json={"course_id": "C9"}, headers=auth_headers(student)
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "already_enrolled"

        mine = client.get("/v1/enrollments/me", headers=auth_headers(student)).json()
        assert mine["total"] == 1
        assert mine["items"][0]["payment_reference"] == "pay_9"

    def test_validation_error_shape(self, client, student, auth_headers) -> None:
        response = client.post(
            "/v1/enrollments/redeem", json={"code": ""}, headers=auth_headers(student)
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
        assert response.json()["details"]


class TestPaymentCallback:
    @pytest.fixture(autouse=True)
    def enrolled(self, client, student, auth_headers) -> None:
        client.post("/v1/enrollments", json={"course_id": "C1"}, headers=auth_headers(student))

    def payload(self, status: str) -> dict[str, str]:
        return {"student_id": "S1", "course_id": "C1", "payment_status": status}

    def test_requires_api_key(self, client) -> None:
        response = client.post("/v1/integrations/payments", json=self.payload("completed"))
        assert response.status_code == 401

    def test_rejects_wrong_api_key(self, client) -> None:
        response = client.post(
            "/v1/integrations/payments",
            json=self.payload("completed"),
            headers={"X-API-Key": "wrong"},
        )
        assert response.status_code == 403

    def test_unknown_status(self, client) -> None:
        response = client.post(
            "/v1/integrations/payments", json=self.payload("paid"), headers=API_KEY
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"

    def test_completed_is_final(self, client) -> None:
        client.post(
            "/v1/integrations/payments", json=self.payload("completed"), headers=API_KEY
        )

        response = client.post(
            "/v1/integrations/payments", json=self.payload("pending"), headers=API_KEY
        )

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_transition"


class TestAdminEndpoints:
    def test_student_cannot_generate_codes(self, client, student, auth_headers) -> None:
        response = client.post(
            "/v1/admin/access-codes",
            json={"course_id": "C1"},
            headers=auth_headers(student),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "permission_denied"

    def test_bulk_generation(self, client, admin, auth_headers) -> None:
        response = client.post(
            "/v1/admin/access-codes",
            json={"course_id": "C1", "count": 3},
            headers=auth_headers(admin),
        )

        assert response.status_code == 201
        assert response.json()["total"] == 3

        listed = client.get(
            "/v1/admin/access-codes", params={"course_id": "C1"}, headers=auth_headers(admin)
        )
        assert listed.json()["total"] == 3

    def test_revoke_code(self, client, course_code, admin, auth_headers) -> None:
        response = client.post(
            f"/v1/admin/access-codes/{course_code}/revoke", headers=auth_headers(admin)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "revoked"

        again = client.post(
            f"/v1/admin/access-codes/{course_code}/revoke", headers=auth_headers(admin)
        )
        assert again.status_code == 409

    def test_coordinator_cannot_reset(
        self, client, student, coordinator, auth_headers
    ) -> None:
        client.post("/v1/enrollments", json={"course_id": "C1"}, headers=auth_headers(student))

        response = client.post(
            "/v1/admin/enrollments/S1/C1/reset", headers=auth_headers(coordinator)
        )

        assert response.status_code == 403

    def test_suspended_student_cannot_enroll(
        self, client, course_code, admin, student, auth_headers
    ) -> None:
        assert client.get("/v1/accounts/me", headers=auth_headers(student)).status_code == 200

        suspended = client.post(
            "/v1/admin/accounts/S1/suspend",
            json={"reason": "Chargeback"},
            headers=auth_headers(admin),
        )
        assert suspended.status_code == 200
        assert suspended.json()["status"] == "suspended"

        response = client.post(
            "/v1/enrollments/redeem", json={"code": course_code}, headers=auth_headers(student)
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Your account is suspended."

    def test_delete_account(self, client, admin, student, auth_headers) -> None:
        client.post("/v1/enrollments", json={"course_id": "C1"}, headers=auth_headers(student))

        response = client.delete("/v1/admin/accounts/S1", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json() == {"user_id": "S1", "enrollments_removed": 1}
        mine = client.get("/v1/enrollments/me", headers=auth_headers(student)).json()
        assert mine["total"] == 0


class TestAccounts:
    def test_profile_update(self, client, student, auth_headers) -> None:
        response = client.patch(
            "/v1/accounts/me",
            json={"full_name": "Samuel Student"},
            headers=auth_headers(student),
        )

        assert response.status_code == 200
        assert response.json()["full_name"] == "Samuel Student"

    def test_role_cannot_be_changed(self, client, student, auth_headers) -> None:
        response = client.patch(
            "/v1/accounts/me",
            json={"full_name": "Sam", "role": "admin"},
            headers=auth_headers(student),
        )

        assert response.status_code == 422


class TestAuditEndpoints:
    def test_list_and_export(self, client, course_code, admin, auth_headers) -> None:
        listed = client.get("/v1/admin/audit-logs", headers=auth_headers(admin))
        assert listed.status_code == 200
        items = listed.json()["items"]
        assert len(items) == 1
        assert items[0]["action"] == "generate_code"
        assert items[0]["target_id"] == course_code
        assert listed.json()["has_more"] is False

        export = client.get("/v1/admin/audit-logs/export", headers=auth_headers(admin))
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert "audit-logs-" in export.headers["content-disposition"]
        lines = export.text.splitlines()
        assert lines[0] == "Timestamp,Admin,Action,Target Type,Target ID,Details"
        assert '"Ada Admin","Generate Code","code","ABC123"' in lines[1]

    def test_coordinator_cannot_read_audit_log(
        self, client, coordinator, auth_headers
    ) -> None:
        response = client.get("/v1/admin/audit-logs", headers=auth_headers(coordinator))

        assert response.status_code == 403

    def test_invalid_cursor(self, client, admin, auth_headers) -> None:
        response = client.get(
            "/v1/admin/audit-logs", params={"cursor": "bogus"}, headers=auth_headers(admin)
        )

        assert response.status_code == 400
