"""FastAPI dependencies for caller authentication.

Two kinds of caller reach the API:
- people, with an identity-provider Bearer token (students and staff)
- the payment provider, with the shared ``X-API-Key``
"""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.permissions import UserRole, ensure_permission
from src.auth.schemas import Principal
from src.auth.security import authenticate_token
from src.config.settings import Settings, get_settings
from src.core.context import set_user_id


BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers=BEARER_CHALLENGE,
    )


def get_token_from_header(request: Request) -> str | None:
    """Bearer token from the Authorization header, if well formed."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_principal(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Principal:
    """Authenticated caller for the request.

    Raises:
        HTTPException(401): If the token is missing, invalid or expired
    """
    if token is None:
        raise _unauthorized("Access token not provided")

    try:
        principal = authenticate_token(token)
    except JWTError as e:
        raise _unauthorized("Invalid or expired token") from e

    set_user_id(principal.id)
    return principal


CurrentUser = Annotated[Principal, Depends(get_current_principal)]


def require_permission(required_role: UserRole, operation: str):
    """Dependency admitting callers at or above ``required_role``.

    Denials raise ``PermissionDeniedError`` (HTTP 403) and are logged
    with the operation name.

    Example:
        @router.post("/codes/{code}/revoke")
        async def revoke(
            principal: Annotated[
                Principal, Depends(require_permission(UserRole.ADMIN, "revoke_code"))
            ],
        ): ...
    """

    async def permission_checker(principal: CurrentUser) -> Principal:
        ensure_permission(principal.id, principal.role, required_role, operation)
        return principal

    return permission_checker


# ==============================================================================
# Integration callers
# ==============================================================================


async def verify_master_api_key(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Check ``X-API-Key`` against the configured master key.

    Raises:
        HTTPException(401): If no key was sent
        HTTPException(503): If no master key is configured
        HTTPException(403): If the key does not match
    """
    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="API Key required")

    if not settings.master_api_key:
        raise HTTPException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API Key authentication not configured",
        )

    # Constant-time comparison
    if not secrets.compare_digest(api_key, settings.master_api_key):
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Invalid API Key")

    return api_key


MasterApiKey = Annotated[str, Depends(verify_master_api_key)]
