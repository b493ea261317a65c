"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from leaps.config import get_settings


def _ensure_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair for testing if the configured one is missing."""
    get_settings.cache_clear()
    settings = get_settings()
    private_path = settings.jwt_private_key_path
    public_path = settings.jwt_public_key_path

    if os.path.exists(private_path) and os.path.exists(public_path):
        return private_path, public_path

    tmpdir = tempfile.mkdtemp(prefix="leaps_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as f:
        f.write(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    with open(public_path, "wb") as f:
        f.write(
            key.public_key().public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )

    os.environ["LEAPS_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["LEAPS_JWT_PUBLIC_KEY_PATH"] = public_path

    # Clear cached settings and JWT keys
    get_settings.cache_clear()
    from leaps.auth.jwt import reset_keys
    reset_keys()

    return private_path, public_path


_ensure_test_keys()


async def _fake_session() -> AsyncGenerator[AsyncMock, None]:
    yield AsyncMock()


@pytest.fixture
def app() -> FastAPI:
    """App with database dependencies replaced by mocks. No lifespan, so Redis stays uninitialized."""
    from leaps.database import get_session, get_session_factory
    from leaps.main import create_app

    application = create_app()
    application.dependency_overrides[get_session] = _fake_session
    application.dependency_overrides[get_session_factory] = lambda: AsyncMock()
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app in-process."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_token() -> Callable[..., str]:
    from leaps.auth.jwt import create_access_token

    def _make(role: str = "PARTICIPANT", user_id: str = "user-1") -> str:
        return create_access_token(user_id, role)

    return _make


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a caller with the given role."""

    def _headers(role: str = "PARTICIPANT", user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(role, user_id)}"}

    return _headers


@pytest.fixture
def cron_secret(monkeypatch: pytest.MonkeyPatch):
    """Configure a cron secret for the duration of one test."""
    monkeypatch.setenv("LEAPS_CRON_SECRET", "test-cron-secret")
    get_settings.cache_clear()
    yield "test-cron-secret"
    monkeypatch.delenv("LEAPS_CRON_SECRET", raising=False)
    get_settings.cache_clear()
