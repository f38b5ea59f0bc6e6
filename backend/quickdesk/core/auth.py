"""
JWT bearer token utilities.

WHY: QuickDesk does not own credentials. An identity provider (or the
bootstrap tooling) issues HS256 tokens whose `sub` claim is the user id;
this module signs and verifies them so every request resolves to a
principal with an id and a role.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from uuid import UUID

from jose import jwt, JWTError

from quickdesk.core.config import settings
from quickdesk.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


def create_access_token(
    user_id: UUID,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed JWT access token.

    Token includes:
    - sub: the user id (string form)
    - role: informational only; authorization always re-reads the user row
    - exp / iat / nbf: standard lifecycle claims

    Args:
        user_id: Id of the user the token identifies
        role: Role name to embed for clients
        expires_delta: Optional custom expiration time
        extra_claims: Additional non-sensitive claims

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))

    to_encode: Dict[str, Any] = dict(extra_claims or {})
    to_encode.update(
        {
            "sub": str(user_id),
            "exp": expire,
            "iat": now,
            "nbf": now,
        }
    )
    if role is not None:
        to_encode["role"] = role

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")
    except JWTError as e:
        raise TokenInvalidError(
            message="Token is invalid",
            error=str(e),
        )
