"""FastAPI authentication and authorization dependencies."""

from __future__ import annotations

import hmac
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from leaps.auth.jwt import verify_token
from leaps.config import get_settings
from leaps.domain import has_role

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Authenticated caller as asserted by the access token."""

    user_id: str
    role: str

    def has_role(self, minimum: str) -> bool:
        return has_role(self.role, minimum)


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> Caller:
    """
    Extract and verify the bearer JWT.

    Raises 401 when the header is missing or the token does not verify.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    except OSError as e:
        # Public key missing on disk: nobody can be authenticated
        raise HTTPException(status_code=401, detail="Token verification unavailable") from e
    return Caller(user_id=str(payload["sub"]), role=payload["role"])


def require_role(minimum: str) -> Callable[..., Awaitable[Caller]]:
    """Dependency factory: the caller must hold `minimum` or a more privileged role."""

    async def _check(caller: Caller = Depends(get_current_caller)) -> Caller:
        if not caller.has_role(minimum):
            raise HTTPException(status_code=403, detail=f"{minimum} role required")
        return caller

    return _check


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Scheduled jobs authenticate with `Authorization: Bearer <cron_secret>`."""
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(status_code=503, detail="Cron secret not configured")
    if credentials is None or not hmac.compare_digest(credentials.credentials.encode(), secret.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
