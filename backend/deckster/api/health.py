"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.config import settings
from deckster.database import get_db
from deckster.tasks.cleanup import find_abandoned_sessions

router = APIRouter()

# The cleanup job runs daily, so anything abandoned for a further day means a missed run
CLEANUP_GRACE_HOURS = 24


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict:
    """
    Health check endpoint for load balancers and monitoring.

    Checks database connectivity and returns service status.
    """
    checks = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["checks"]["database"] = "ok"
    except Exception as e:
        checks["checks"]["database"] = f"error: {str(e)}"
        checks["status"] = "unhealthy"

    return checks


@router.get("/ready")
async def readiness_check() -> dict:
    """
    Readiness probe for Railway.

    Lists which downstream integrations are configured. A missing one does
    not block traffic, but the routes that need it will fail.
    """
    integrations = {
        "file_search": bool(settings.gemini_api_key),
        "stripe": bool(settings.stripe_secret_key and settings.stripe_webhook_secret),
        "layout_service": bool(settings.layout_service_url),
        "download_service": bool(settings.download_service_url),
        "cron": bool(settings.cron_secret),
    }
    missing = sorted(name for name, ok in integrations.items() if not ok)
    return {
        "status": "degraded" if missing else "ready",
        "integrations": integrations,
        "missing": missing,
    }


@router.get("/health/cleanup")
async def cleanup_status(db: AsyncSession = Depends(get_db)) -> dict:
    """
    Cleanup job health: how many abandoned sessions are still waiting.

    Sessions abandoned for longer than one extra day mean the scheduled
    job has not run.
    """
    threshold = settings.session_cleanup_threshold_hours
    now = datetime.now(timezone.utc)

    _, pending = await find_abandoned_sessions(db, threshold, now)
    _, overdue = await find_abandoned_sessions(db, threshold + CLEANUP_GRACE_HOURS, now)

    return {
        "status": "overdue" if overdue else "healthy",
        "timestamp": now.isoformat(),
        "threshold_hours": threshold,
        "pending": len(pending),
        "overdue": len(overdue),
    }
