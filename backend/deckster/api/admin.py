"""Admin API endpoints: user approval and abandoned session cleanup."""

import hmac

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.auth import Principal, require_admin
from deckster.config import settings
from deckster.database import get_db, utcnow
from deckster.errors import server_error
from deckster.models import User
from deckster.schemas.admin import (
    AdminUserOut,
    ApprovedUser,
    ApproveRequest,
    ApproveResponse,
    CleanupDryRunResponse,
    CleanupResponse,
    UserListResponse,
)
from deckster.services.file_search import FileSearchStore, get_file_search_store
from deckster.tasks.cleanup import preview_cleanup, purge_abandoned_sessions

logger = structlog.get_logger()

router = APIRouter(prefix="/admin")


@router.get("/users", response_model=UserListResponse)
async def list_users(
    approved: bool | None = Query(default=None),
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    """List accounts, newest first, optionally filtered by approval state."""
    filters = []
    if approved is not None:
        filters.append(User.approved == approved)

    result = await db.execute(select(User).where(*filters).order_by(User.created_at.desc()))
    total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar_one()

    return UserListResponse(
        users=[AdminUserOut.model_validate(u) for u in result.scalars().all()],
        total=total,
    )


@router.post("/users/approve", response_model=ApproveResponse)
async def approve_user(
    body: ApproveRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ApproveResponse:
    """Grant or revoke access for an account."""
    user = await db.get(User, body.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.approved = body.approved
    user.approved_at = utcnow() if body.approved else None
    user.approved_by = admin.email if body.approved else None
    await db.commit()

    logger.info(
        "User approval changed",
        user_id=user.id,
        approved=body.approved,
        admin=admin.email,
    )
    return ApproveResponse(
        success=True,
        user=ApprovedUser(id=user.id, email=user.email, approved=user.approved),
    )


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>``."""
    if not settings.cron_secret:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(
            status_code=500, detail="Server misconfiguration - CRON_SECRET not set"
        )
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Unauthorized cleanup attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/cleanup-sessions", response_model=CleanupDryRunResponse)
async def cleanup_dry_run(db: AsyncSession = Depends(get_db)) -> CleanupDryRunResponse:
    """Report which abandoned draft sessions a purge would delete."""
    try:
        return await preview_cleanup(db)
    except Exception as e:
        logger.error("Cleanup dry run failed", error=str(e))
        raise HTTPException(status_code=500, detail=server_error("Dry run failed", e))


@router.post(
    "/cleanup-sessions",
    response_model=CleanupResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def cleanup_sessions(
    db: AsyncSession = Depends(get_db),
    store: FileSearchStore = Depends(get_file_search_store),
) -> CleanupResponse:
    """Hard-delete abandoned draft sessions. Called by the external cron."""
    try:
        return await purge_abandoned_sessions(db, store)
    except Exception as e:
        await db.rollback()
        logger.error("Session cleanup failed", error=str(e))
        raise HTTPException(status_code=500, detail=server_error("Cleanup failed", e))
