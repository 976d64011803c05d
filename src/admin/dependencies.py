"""Dependencies for admin routes."""

from collections.abc import Callable

from src.admin.service import AdminActionService


# Service getter function (set by main.py)
_admin_service_getter: Callable[[], AdminActionService] | None = None


def set_admin_service_getter(getter: Callable[[], AdminActionService]) -> None:
    """Set the admin action service getter function."""
    global _admin_service_getter  # noqa: PLW0603 - Required for DI pattern
    _admin_service_getter = getter


def get_admin_service() -> AdminActionService:
    """Get AdminActionService instance."""
    if _admin_service_getter is not None:
        return _admin_service_getter()

    msg = "AdminActionService not configured"
    raise RuntimeError(msg)
