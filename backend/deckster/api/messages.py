"""Chat message batch sync endpoints."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.api.deps import get_owned_session
from deckster.auth import get_current_user
from deckster.database import as_utc, get_db, insert_for, utcnow
from deckster.models import ChatMessage, ChatSession, User
from deckster.schemas.common import Pagination
from deckster.schemas.message import (
    BatchSaveResponse,
    MessageBatch,
    MessageIn,
    MessageListResponse,
    MessageOut,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/sessions/{session_id}/messages")

MAX_PAGE_SIZE = 500


async def _upsert_message(db: AsyncSession, session_id: str, msg: MessageIn) -> bool:
    """
    Insert a message, or refresh the payload of an existing one.

    Returns False when the id already belongs to another session and
    nothing was written.

    ``user_text`` is only overwritten when the new value is non-empty, so a
    resend without text never erases what the user typed.
    """
    changes = {"payload": msg.payload}
    if msg.user_text:
        changes["user_text"] = msg.user_text

    insert = insert_for(db)
    stmt = insert(ChatMessage).values(
        id=msg.id,
        session_id=session_id,
        message_type=msg.message_type,
        timestamp=msg.timestamp,
        payload=msg.payload,
        user_text=msg.user_text or None,
        created_at=utcnow(),
    ).on_conflict_do_update(
        index_elements=["id"],
        set_=changes,
        # Never touch a message that belongs to another session
        where=ChatMessage.session_id == session_id,
    )
    result = await db.execute(stmt)
    return result.rowcount > 0


@router.post("", response_model=BatchSaveResponse)
async def save_messages(
    session_id: str,
    body: MessageBatch,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> BatchSaveResponse:
    """
    Upsert a batch of messages.

    Each message is written in its own transaction, so one bad message does
    not sink the batch; the response reports how many were saved. The
    session's ``lastMessageAt`` moves to the newest timestamp that was stored.
    """
    await get_owned_session(db, session_id, user)

    if not body.messages:
        raise HTTPException(
            status_code=400, detail="messages array is required and must not be empty"
        )

    logger.info("Saving messages", session_id=session_id, count=len(body.messages))

    saved = 0
    failed = 0
    written = []
    for msg in body.messages:
        try:
            stored = await _upsert_message(db, session_id, msg)
            await db.commit()
        except Exception as e:
            await db.rollback()
            failed += 1
            logger.error(
                "Failed to save message",
                session_id=session_id,
                message_id=msg.id,
                error=str(e),
            )
            continue

        if stored:
            saved += 1
            written.append(as_utc(msg.timestamp))
        else:
            failed += 1
            logger.warning(
                "Message id belongs to another session",
                session_id=session_id,
                message_id=msg.id,
            )

    if written:
        latest = max(written)
        await db.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(last_message_at=latest, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    return BatchSaveResponse(saved=saved, failed=failed, total=len(body.messages))


@router.get("", response_model=MessageListResponse)
async def list_messages(
    session_id: str,
    limit: int = Query(default=100, ge=1),
    offset: int = Query(default=0, ge=0),
    message_type: str | None = Query(default=None, alias="messageType"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageListResponse:
    """Page through a session's messages, oldest first."""
    await get_owned_session(db, session_id, user)

    limit = min(limit, MAX_PAGE_SIZE)
    filters = [ChatMessage.session_id == session_id]
    if message_type:
        filters.append(ChatMessage.message_type == message_type)

    result = await db.execute(
        select(ChatMessage)
        .where(*filters)
        .order_by(ChatMessage.timestamp.asc())
        .limit(limit)
        .offset(offset)
    )
    total = (
        await db.execute(select(func.count()).select_from(ChatMessage).where(*filters))
    ).scalar_one()

    return MessageListResponse(
        messages=[MessageOut.model_validate(m) for m in result.scalars().all()],
        pagination=Pagination(
            total=total, limit=limit, offset=offset, has_more=offset + limit < total
        ),
    )
