"""Abandoned draft session cleanup.

A draft session is abandoned when no message was ever sent
(``last_message_at IS NULL``) and it was created more than
``SESSION_CLEANUP_THRESHOLD_HOURS`` ago. The dry run and the purge share the
same query so they always agree on the candidate set.
"""

import asyncio
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload
from sqlalchemy.pool import NullPool

from deckster.celery_app import celery_app
from deckster.config import settings
from deckster.database import as_utc, utcnow
from deckster.models import ChatMessage, ChatSession, SessionStateCache, UploadedFile
from deckster.schemas.admin import CleanupCandidate, CleanupDryRunResponse, CleanupResponse
from deckster.services.file_search import FileSearchStore, FileStoreError, GeminiFileSearchStore

logger = structlog.get_logger()


def run_async(coro):
    """Helper to run async code in sync Celery task."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def find_abandoned_sessions(
    db: AsyncSession, threshold_hours: int, now: datetime | None = None
) -> tuple[datetime, list[ChatSession]]:
    """Return the cutoff time and the abandoned drafts older than it, oldest first."""
    now = now or utcnow()
    cutoff = now - timedelta(hours=threshold_hours)
    result = await db.execute(
        select(ChatSession)
        .options(selectinload(ChatSession.uploaded_files))
        .where(
            ChatSession.status == "draft",
            ChatSession.last_message_at.is_(None),
            ChatSession.created_at < cutoff,
        )
        .order_by(ChatSession.created_at.asc())
    )
    return cutoff, list(result.scalars().all())


def _describe(session: ChatSession, now: datetime) -> CleanupCandidate:
    created_at = as_utc(session.created_at)
    return CleanupCandidate(
        id=session.id,
        user_id=session.user_id,
        created_at=created_at,
        age_hours=int((now - created_at).total_seconds() // 3600),
        file_count=len(session.uploaded_files),
        total_file_size=sum(f.file_size or 0 for f in session.uploaded_files),
    )


async def preview_cleanup(
    db: AsyncSession, threshold_hours: int | None = None
) -> CleanupDryRunResponse:
    """Report what a purge would delete without deleting anything."""
    threshold = threshold_hours or settings.session_cleanup_threshold_hours
    now = utcnow()
    cutoff, sessions = await find_abandoned_sessions(db, threshold, now)
    candidates = [_describe(s, now) for s in sessions]

    logger.info(
        "Cleanup dry run",
        threshold_hours=threshold,
        cutoff=cutoff.isoformat(),
        would_delete=len(candidates),
    )
    total_size = sum(c.total_file_size for c in candidates)
    return CleanupDryRunResponse(
        threshold_hours=threshold,
        cutoff_time=cutoff,
        would_delete=len(candidates),
        total_files=sum(c.file_count for c in candidates),
        total_size_mb=f"{total_size / 1024 / 1024:.2f}",
        sessions=candidates,
    )


async def purge_abandoned_sessions(
    db: AsyncSession,
    store: FileSearchStore | None = None,
    threshold_hours: int | None = None,
) -> CleanupResponse:
    """Hard-delete abandoned drafts and everything hanging off them."""
    threshold = threshold_hours or settings.session_cleanup_threshold_hours
    now = utcnow()
    cutoff, sessions = await find_abandoned_sessions(db, threshold, now)
    candidates = [_describe(s, now) for s in sessions]
    store_names = {s.gemini_store_name for s in sessions if s.gemini_store_name}

    logger.info(
        "Starting session cleanup",
        threshold_hours=threshold,
        cutoff=cutoff.isoformat(),
        candidates=len(candidates),
    )

    if not candidates:
        return CleanupResponse(
            threshold_hours=threshold,
            cutoff_time=cutoff,
            sessions_deleted=0,
            files_deleted=0,
            messages_deleted=0,
            cache_deleted=0,
            oldest_session_age=0,
            unique_users=0,
            gemini_stores_deleted=0,
            sessions=[],
        )

    session_ids = [c.id for c in candidates]

    # Children first, then the sessions themselves
    files = await db.execute(delete(UploadedFile).where(UploadedFile.session_id.in_(session_ids)))
    messages = await db.execute(delete(ChatMessage).where(ChatMessage.session_id.in_(session_ids)))
    cache = await db.execute(
        delete(SessionStateCache).where(SessionStateCache.session_id.in_(session_ids))
    )
    deleted = await db.execute(delete(ChatSession).where(ChatSession.id.in_(session_ids)))
    await db.commit()

    stores_deleted = 0
    if store is not None:
        for store_name in store_names:
            try:
                await store.delete_store(store_name)
                stores_deleted += 1
            except FileStoreError as e:
                logger.error("Failed to delete File Search Store", store_name=store_name, error=str(e))

    response = CleanupResponse(
        threshold_hours=threshold,
        cutoff_time=cutoff,
        sessions_deleted=deleted.rowcount,
        files_deleted=files.rowcount,
        messages_deleted=messages.rowcount,
        cache_deleted=cache.rowcount,
        oldest_session_age=max(c.age_hours for c in candidates),
        unique_users=len({c.user_id for c in candidates}),
        gemini_stores_deleted=stores_deleted,
        sessions=candidates,
    )
    logger.info(
        "Cleanup completed",
        sessions_deleted=response.sessions_deleted,
        files_deleted=response.files_deleted,
        messages_deleted=response.messages_deleted,
        cache_deleted=response.cache_deleted,
        gemini_stores_deleted=stores_deleted,
    )
    return response


@celery_app.task(name="deckster.tasks.cleanup.cleanup_abandoned_sessions")
def cleanup_abandoned_sessions() -> dict:
    """
    Purge abandoned draft sessions.

    Runs daily at 2am UTC from Celery beat. The same purge is exposed over
    HTTP for external cron callers.
    """
    logger.info("Starting scheduled session cleanup")
    return run_async(_cleanup_abandoned_sessions_async())


async def _cleanup_abandoned_sessions_async() -> dict:
    """Async implementation of the scheduled purge, on a task-local engine."""
    task_engine = create_async_engine(settings.async_database_url, poolclass=NullPool)
    try:
        async with async_sessionmaker(task_engine, expire_on_commit=False)() as db:
            result = await purge_abandoned_sessions(db, GeminiFileSearchStore())
    finally:
        await task_engine.dispose()
    return result.model_dump(mode="json", by_alias=True)
