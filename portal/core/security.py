"""
Security utilities for session tokens and client authentication.
Handles signing and verification of the cross-subdomain session JWT.
"""
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import jwt

from portal.config import settings
from portal.utils.datetime_utils import utc_now


class SessionTokenError(Exception):
    """Raised when a session token is missing, malformed, expired or forged."""
    pass


@dataclass(frozen=True)
class SessionClaims:
    """Claims this service relies on from a verified session token."""

    user_id: str
    email: Optional[str]
    role: str
    expires_at: datetime


def create_session_token(
    user_id: str,
    email: str,
    role: str = "user",
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create the SSO session token shared by every subdomain.

    Args:
        user_id: Identity backend user ID
        email: User email address
        role: User role
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token

    Example:
        ```python
        token = create_session_token(user.id, user.email)
        ```
    """
    now = utc_now()
    expire = now + (expires_delta or timedelta(days=settings.session_token_ttl_days))

    payload: Dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "role": role,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": expire,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_session_token(token: Optional[str]) -> SessionClaims:
    """
    Verify signature, issuer, audience and expiry of a session token.

    Args:
        token: JWT token string

    Returns:
        SessionClaims extracted from the token

    Raises:
        SessionTokenError: If token is invalid or expired
    """
    if not token or not isinstance(token, str):
        raise SessionTokenError("Missing token")

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"require": ["exp", "userId"]},
        )
    except jwt.ExpiredSignatureError:
        raise SessionTokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise SessionTokenError(f"Invalid token: {e}")

    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not user_id:
        raise SessionTokenError("Token missing user ID claim")

    return SessionClaims(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role") or "user",
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def generate_authorization_code() -> str:
    """Generate a single-use authorization code (32 random bytes, URL-safe)."""
    return secrets.token_urlsafe(32)


def secrets_match(supplied: Optional[str], expected: str) -> bool:
    """Constant-time comparison of a supplied client secret."""
    if not supplied or not isinstance(supplied, str):
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))
