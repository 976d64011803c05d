"""Dependencies for audit log routes."""

from collections.abc import Callable

from src.audit.service import AuditLogStore


# Store getter function (set by main.py)
_audit_store_getter: Callable[[], AuditLogStore] | None = None


def set_audit_store_getter(getter: Callable[[], AuditLogStore]) -> None:
    """Set the audit log store getter function."""
    global _audit_store_getter  # noqa: PLW0603 - Required for DI pattern
    _audit_store_getter = getter


def get_audit_store() -> AuditLogStore:
    """Get AuditLogStore instance."""
    if _audit_store_getter is not None:
        return _audit_store_getter()

    msg = "AuditLogStore not configured"
    raise RuntimeError(msg)
