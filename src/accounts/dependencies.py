"""Dependencies for account routes."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from src.accounts.models import UserAccount
from src.accounts.service import AccountStore
from src.auth.dependencies import get_current_principal
from src.auth.schemas import Principal
from src.core.errors import PermissionDeniedError
from src.core.logging import get_logger


logger = get_logger(__name__)

# Service getter function (set by main.py)
_account_store_getter: Callable[[], AccountStore] | None = None


def set_account_store_getter(getter: Callable[[], AccountStore]) -> None:
    """Set the account store getter function."""
    global _account_store_getter  # noqa: PLW0603 - Required for DI pattern
    _account_store_getter = getter


def get_account_store() -> AccountStore:
    """Get AccountStore instance."""
    if _account_store_getter is not None:
        return _account_store_getter()

    msg = "AccountStore not configured"
    raise RuntimeError(msg)


async def get_current_account(
    principal: Annotated[Principal, Depends(get_current_principal)],
    accounts: Annotated[AccountStore, Depends(get_account_store)],
) -> UserAccount:
    """Load (or create) the caller's account."""
    return await accounts.ensure_account(principal.id, principal.role, principal.name)


async def get_active_principal(
    principal: Annotated[Principal, Depends(get_current_principal)],
    account: Annotated[UserAccount, Depends(get_current_account)],
) -> Principal:
    """Caller whose account is not suspended.

    Raises:
        PermissionDeniedError: If the account is suspended
    """
    if account.is_suspended:
        logger.warning("suspended_account_rejected", user_id=principal.id)
        msg = "Your account is suspended."
        raise PermissionDeniedError(msg)
    return principal


CurrentAccount = Annotated[UserAccount, Depends(get_current_account)]
ActiveUser = Annotated[Principal, Depends(get_active_principal)]
