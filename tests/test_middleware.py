"""Middleware tests: request ID, rate limiting, CORS, error envelope."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from leaps.config import get_settings
from leaps.errors import DataShapeError, SectionTimeoutError
from leaps.middleware import rate_limit
from leaps.middleware.error_handler import setup_error_handlers


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self.redis = redis
        self.ops: list[tuple[str, str]] = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def expire(self, key, seconds):
        self.ops.append(("expire", key))

    async def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.redis.counters[key] = self.redis.counters.get(key, 0) + 1
                results.append(self.redis.counters[key])
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self) -> None:
        self.counters: dict[str, int] = {}

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: redis)
    return redis


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert "x-request-id" in response.headers
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_no_redis_means_no_rate_limit(client: AsyncClient) -> None:
    """Without Redis the limiter steps aside."""
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_headers(client: AsyncClient, fake_redis: FakeRedis) -> None:
    """Rate limit headers are present on non-exempt endpoints."""
    response = await client.get("/version")
    assert response.headers["x-ratelimit-limit"] == str(get_settings().rate_limit_requests)
    assert "x-ratelimit-remaining" in response.headers


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, fake_redis: FakeRedis) -> None:
    """The request after the limit returns 429 with Retry-After and the error envelope."""
    limit = get_settings().rate_limit_requests
    for _ in range(limit):
        await client.get("/version")
    response = await client.get("/version")
    assert response.status_code == 429
    assert "retry-after" in response.headers
    assert response.json()["code"] == "RATE_LIMITED"


@pytest.mark.asyncio
async def test_rate_limit_keyed_by_caller(client: AsyncClient, fake_redis: FakeRedis, auth_headers) -> None:
    """Authenticated callers get their own counter; anonymous callers share one per IP."""
    await client.get("/version", headers=auth_headers("PARTICIPANT", "user-7"))
    await client.get("/version")
    keys = list(fake_redis.counters)
    assert any(k.startswith("ratelimit:user:user-7:") for k in keys)
    assert any(k.startswith("ratelimit:ip:") for k in keys)


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, fake_redis: FakeRedis) -> None:
    """Health endpoint is exempt from rate limiting."""
    for _ in range(get_settings().rate_limit_requests + 5):
        response = await client.get("/health")
        assert response.status_code == 200
    assert fake_redis.counters == {}


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/health",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
class TestErrorEnvelope:
    """Every failure leaves as {error, code}."""

    @pytest.fixture
    def failing_app(self) -> FastAPI:
        app = FastAPI()
        setup_error_handlers(app)

        @app.get("/timeout")
        async def timeout() -> None:
            raise SectionTimeoutError("Report section 'trends' timed out after 15s", details={"section": "trends"})

        @app.get("/shape")
        async def shape() -> None:
            raise DataShapeError("2 distribution rows could not be mapped")

        @app.get("/crash")
        async def crash() -> None:
            raise RuntimeError("connection reset")

        return app

    async def _get(self, app: FastAPI, path: str):
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            return await ac.get(path)

    async def test_timeout(self, failing_app):
        response = await self._get(failing_app, "/timeout")
        assert response.status_code == 504
        assert response.json() == {
            "error": "Report section 'trends' timed out after 15s",
            "code": "TIMEOUT",
            "details": {"section": "trends"},
        }

    async def test_data_shape(self, failing_app):
        response = await self._get(failing_app, "/shape")
        assert response.status_code == 500
        assert response.json()["code"] == "DATA_SHAPE_ERROR"

    async def test_unhandled_hides_internals(self, failing_app):
        response = await self._get(failing_app, "/crash")
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}

    async def test_unknown_route(self, failing_app):
        response = await self._get(failing_app, "/nope")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
