"""
Bearer tokens for staff users.

Login lives in the identity service that issues these tokens; this
service only verifies them and resolves the subject to a User, whose
id and name are stamped on orders, PRs, dispatch notes and receipts.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from fulfillment.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    subject: str | uuid.UUID,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Sign an access token for a user id.

    Args:
        subject: User ID
        expires_delta: Lifetime; ACCESS_TOKEN_EXPIRE_MINUTES when omitted
        additional_claims: Extra claims, e.g. name and role

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": str(uuid.uuid4()),
        "type": ACCESS_TOKEN_TYPE,
    }
    if additional_claims:
        claims.update(additional_claims)

    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Access token for a User, carrying its display name and role."""
    return create_access_token(
        user.id,
        expires_delta=expires_delta,
        additional_claims={"name": user.name, "role": user.role},
    )


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """Claims of a correctly signed, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[str]:
    """User ID from an access token, or None if the token is unusable."""
    claims = decode_token(token)
    if not claims or claims.get("type") != ACCESS_TOKEN_TYPE:
        return None
    return claims.get("sub")
