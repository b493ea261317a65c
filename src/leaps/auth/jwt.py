"""
RS256 JWT verification.

Tokens carry the caller's user id in `sub` and their programme role in
`role`. The identity provider signs them; this service only needs the
public key, except when minting tokens for internal calls and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from leaps.config import get_settings
from leaps.domain import ROLES

_private_key: str | None = None
_public_key: str | None = None


def _load_public_key() -> str:
    """Load the RSA public key from disk (cached after first call)."""
    global _public_key  # noqa: PLW0603
    if _public_key is None:
        _public_key = Path(get_settings().jwt_public_key_path).read_text()
    return _public_key


def _load_private_key() -> str:
    global _private_key  # noqa: PLW0603
    if _private_key is None:
        _private_key = Path(get_settings().jwt_private_key_path).read_text()
    return _private_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _private_key, _public_key  # noqa: PLW0603
    _private_key = None
    _public_key = None


def create_access_token(user_id: str, role: str = "PARTICIPANT") -> str:
    """
    Create a short-lived access token.

    Args:
        user_id: The caller's user id.
        role: One of PARTICIPANT, REVIEWER, ADMIN, SUPERADMIN.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, _load_private_key(), algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Returns:
        Decoded payload dictionary with `sub` and an upper-cased `role`.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or carries no known role.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _load_public_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type", "access") != "access":
        msg = f"Expected an access token, got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    role = str(payload.get("role", "PARTICIPANT")).upper()
    if role not in ROLES:
        msg = f"Unknown role '{role}'"
        raise jwt.InvalidTokenError(msg)
    payload["role"] = role
    return payload
