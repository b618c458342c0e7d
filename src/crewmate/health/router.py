"""Liveness and readiness endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from crewmate.config import get_settings
from crewmate.database import get_engine
from crewmate.redis_client import redis_ready

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process is alive."""
    settings = get_settings()
    return {"status": "healthy", "version": settings.app_version}


@router.get("/ready")
async def readiness() -> dict[str, object]:
    """Readiness probe: checks the stats database and Redis."""
    checks: dict[str, object] = {}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    try:
        checks["redis"] = "ok" if await redis_ready() else "error: no PONG"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    all_ok = all(value == "ok" for value in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}
