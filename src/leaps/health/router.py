"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.config import get_settings
from leaps.database import get_session
from leaps.db.models import MATERIALIZED_VIEWS
from leaps.redis_client import get_redis

router = APIRouter()

_VIEWS_PRESENT_SQL = text("SELECT count(*) FROM pg_matviews WHERE matviewname = ANY(:names)")


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe. Returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database, materialized views, Redis."""
    checks: dict[str, object] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
        present = (await db.execute(_VIEWS_PRESENT_SQL, {"names": list(MATERIALIZED_VIEWS)})).scalar_one()
        missing = len(MATERIALIZED_VIEWS) - present
        checks["materialized_views"] = "ok" if missing == 0 else f"missing: {missing}"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    try:
        redis = get_redis()
        await redis.ping()
        checks["redis"] = "ok"
    except (RuntimeError, RedisError, OSError) as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(v == "ok" for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
