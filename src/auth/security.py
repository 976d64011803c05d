"""Bearer tokens issued by the identity provider.

Claims this API relies on:
- sub: user id
- role: one of the UserRole values
- name: display name, recorded as admin_name on audit entries

Tokens are only minted here for service-to-service calls and tests.
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from src.auth.schemas import Principal
from src.config.settings import get_settings


TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "role")


def create_access_token(
    claims: Mapping[str, Any],
    *,
    ttl: timedelta | None = None,
) -> str:
    """Sign an access token carrying the given claims.

    ``ttl`` defaults to ``auth_access_token_expire_minutes``.
    """
    settings = get_settings()
    issued_at = datetime.now(UTC)
    lifetime = ttl or timedelta(minutes=settings.auth_access_token_expire_minutes)
    payload = {
        **claims,
        "type": TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, settings.auth_secret_key, algorithm=settings.auth_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry, then the claims the API depends on.

    Raises:
        JWTError: If the token is invalid, expired, not an access token,
            or lacks a required claim
    """
    settings = get_settings()
    payload = jwt.decode(
        token, settings.auth_secret_key, algorithms=[settings.auth_algorithm]
    )

    if payload.get("type") != TOKEN_TYPE:
        msg = f"Invalid token type: expected '{TOKEN_TYPE}'"
        raise JWTError(msg)

    missing = [claim for claim in REQUIRED_CLAIMS if not payload.get(claim)]
    if missing:
        msg = f"Access token missing claims: {', '.join(missing)}"
        raise JWTError(msg)

    return payload


def authenticate_token(token: str) -> Principal:
    """Decode a token into the calling principal.

    Raises:
        JWTError: If the token is rejected or names an unknown role
    """
    payload = decode_access_token(token)
    try:
        return Principal.from_claims(payload)
    except ValueError as e:
        msg = f"Invalid token claims: {e}"
        raise JWTError(msg) from e
