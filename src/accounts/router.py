"""Account API routes.

Endpoints for:
- GET /v1/accounts/me - Caller's account (created on first use)
- PATCH /v1/accounts/me - Update the caller's profile
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.accounts.dependencies import CurrentAccount, get_account_store
from src.accounts.schemas import AccountProfileUpdate, AccountResponse
from src.accounts.service import AccountStore


router = APIRouter(
    prefix="/v1/accounts",
    tags=["accounts"],
)


@router.get(
    "/me",
    response_model=AccountResponse,
    summary="Get my account",
)
async def get_my_account(account: CurrentAccount) -> AccountResponse:
    """Get the caller's account."""
    return AccountResponse.model_validate(account)


@router.patch(
    "/me",
    response_model=AccountResponse,
    summary="Update my profile",
    description="Only full_name and username may be changed.",
)
async def update_my_profile(
    body: AccountProfileUpdate,
    account: CurrentAccount,
    accounts: Annotated[AccountStore, Depends(get_account_store)],
) -> AccountResponse:
    """Update the caller's profile."""
    updated = await accounts.update_profile(account.user_id, body)
    return AccountResponse.model_validate(updated)
