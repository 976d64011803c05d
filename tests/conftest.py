"""Shared fixtures.

Services run against ``FakeStore`` (tests/fakes.py), an in-memory table
engine with compare-and-set semantics, and a process-local ``ChangeFeed``.
"""

import os
import tempfile
from collections.abc import Callable, Iterator

import pytest


# Settings are cached on first use; configure them before any src import.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="enrollgate-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("MASTER_API_KEY", "test-master-api-key")
os.environ.setdefault("AUTH_SECRET_KEY", "test-jwt-secret-key-with-at-least-32-chars")

from src.access_codes.service import AccessCodeRegistry  # noqa: E402
from src.accounts.service import AccountStore  # noqa: E402
from src.admin.service import AdminActionService  # noqa: E402
from src.audit.models import AuditActor  # noqa: E402
from src.audit.service import AuditLogStore  # noqa: E402
from src.auth.permissions import UserRole  # noqa: E402
from src.auth.schemas import Principal  # noqa: E402
from src.auth.security import create_access_token  # noqa: E402
from src.enrollments.access_service import CourseAccessService  # noqa: E402
from src.enrollments.service import EnrollmentStore  # noqa: E402
from src.realtime.feed import ChangeFeed  # noqa: E402
from tests.fakes import FakeStore  # noqa: E402


# ==============================================================================
# Principals
# ==============================================================================


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin-1", role=UserRole.ADMIN, name="Ada Admin")


@pytest.fixture
def coordinator() -> Principal:
    return Principal(id="coord-1", role=UserRole.COORDINATOR, name="Cora Coordinator")


@pytest.fixture
def student() -> Principal:
    return Principal(id="S1", role=UserRole.STUDENT, name="Sam Student")


@pytest.fixture
def admin_actor(admin: Principal) -> AuditActor:
    return AuditActor(id=admin.id, name=admin.name)


def token_for(principal: Principal) -> str:
    """Bearer token for a principal, as the identity provider would issue it."""
    return create_access_token(
        {"sub": principal.id, "role": principal.role.value, "name": principal.name}
    )


@pytest.fixture
def auth_headers() -> Callable[[Principal], dict[str, str]]:
    """Authorization headers for a principal."""

    def headers(principal: Principal) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for(principal)}"}

    return headers


# ==============================================================================
# Services
# ==============================================================================


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed(queue_size=16)


@pytest.fixture
def audit(store: FakeStore, feed: ChangeFeed) -> AuditLogStore:
    return AuditLogStore(store, feed, default_page_size=50, max_page_size=200)


@pytest.fixture
def codes(store: FakeStore, audit: AuditLogStore) -> AccessCodeRegistry:
    return AccessCodeRegistry(store, audit)


@pytest.fixture
def enrollments(
    store: FakeStore, audit: AuditLogStore, feed: ChangeFeed
) -> EnrollmentStore:
    return EnrollmentStore(store, audit, feed)


@pytest.fixture
def course_access(
    enrollments: EnrollmentStore, codes: AccessCodeRegistry
) -> CourseAccessService:
    return CourseAccessService(enrollments, codes)


@pytest.fixture
def accounts(
    store: FakeStore, audit: AuditLogStore, enrollments: EnrollmentStore
) -> AccountStore:
    return AccountStore(store, audit, enrollments)


@pytest.fixture
def admin_service(
    codes: AccessCodeRegistry,
    enrollments: EnrollmentStore,
    accounts: AccountStore,
) -> AdminActionService:
    return AdminActionService(codes, enrollments, accounts)


# ==============================================================================
# API
# ==============================================================================


@pytest.fixture
def client(
    store: FakeStore,
    feed: ChangeFeed,
) -> Iterator:
    """TestClient over the real app with services built on the fake store.

    The lifespan (Cassandra/Redis bootstrap) is not entered.
    """
    from fastapi.testclient import TestClient

    from src import main

    main.build_services(store, feed)
    yield TestClient(main.app)
    main.app_state.__dict__.clear()
