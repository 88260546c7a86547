"""JWT token generation and validation utilities.

Session issuance belongs to the identity service; this module only mirrors its
token format (HS256, `sub` + `user_type` claims) so requests can be resolved to
an actor, and so tests can mint tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import InvalidTokenError

from servicehub.lib.settings import settings


def create_access_token(
    user_id: str,
    user_type: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: UUID of the user (stored in 'sub' claim)
        user_type: Role of the user (customer, provider, admin)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_type": user_type,
        "iat": now,
        "exp": now + expires_delta,
    }

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def get_user_from_token(token: str) -> tuple[str, str]:
    """Extract user_id and user_type from a token.

    Raises:
        InvalidTokenError: If token is invalid or required claims are missing
    """
    payload = verify_token(token)
    try:
        return payload["sub"], payload["user_type"]
    except KeyError as e:
        raise InvalidTokenError(f"Missing claim: {e.args[0]}") from e
