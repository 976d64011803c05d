"""Dependencies for access code routes."""

from collections.abc import Callable

from src.access_codes.service import AccessCodeRegistry


# Registry getter function (set by main.py)
_access_code_registry_getter: Callable[[], AccessCodeRegistry] | None = None


def set_access_code_registry_getter(getter: Callable[[], AccessCodeRegistry]) -> None:
    """Set the access code registry getter function."""
    global _access_code_registry_getter  # noqa: PLW0603 - Required for DI pattern
    _access_code_registry_getter = getter


def get_access_code_registry() -> AccessCodeRegistry:
    """Get AccessCodeRegistry instance."""
    if _access_code_registry_getter is not None:
        return _access_code_registry_getter()

    msg = "AccessCodeRegistry not configured"
    raise RuntimeError(msg)
