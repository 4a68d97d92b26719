"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends

from nemshi.config import get_settings
from nemshi.container import get_store
from nemshi.redis_client import get_redis
from nemshi.store import DocumentStore

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    store: DocumentStore = Depends(get_store),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: checks document store and Redis connectivity."""
    checks: dict[str, object] = {}

    # Document store check
    try:
        await store.get("health/ping")
        checks["store"] = "ok"
    except Exception as exc:
        checks["store"] = f"error: {exc}"

    # Redis check (only when change events are published)
    settings = get_settings()
    if settings.publish_changes and settings.store_backend == "sql":
        try:
            redis = get_redis()
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
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
