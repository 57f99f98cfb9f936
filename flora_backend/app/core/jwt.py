"""
JWT access tokens.

Tokens are issued by the account service; this backend decodes them on every
request. ``issue_user_token`` exists for the demo seeder and the tests.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from flora_backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign ``data`` with an ``exp`` claim.

    Expected claims: ``sub`` (email), ``user_id``, ``role``, ``organization_id``.
    ``expires_delta`` defaults to ``access_token_expire_minutes``; a negative
    value yields an already expired token.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.utcnow() + expires_delta}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def issue_user_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Token carrying the standard claims for a ``User`` row."""
    return create_access_token(
        {
            "sub": user.email,
            "user_id": user.id,
            "role": user.role.value,
            "organization_id": user.organization_id,
        },
        expires_delta=expires_delta,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified payload, or None if the signature is bad or the token expired."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
