"""Chat session lifecycle endpoints."""

from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.api.deps import get_owned_session
from deckster.auth import Principal, get_current_user, get_principal
from deckster.config import settings
from deckster.database import get_db, insert_for, utcnow
from deckster.errors import server_error
from deckster.models import ChatMessage, ChatSession, SessionStateCache, UploadedFile, User
from deckster.schemas.common import Pagination
from deckster.schemas.message import MessageOut
from deckster.schemas.session import (
    ActivationResponse,
    ActivationState,
    SessionCreate,
    SessionDetail,
    SessionDetailResponse,
    SessionListResponse,
    SessionOut,
    SessionResponse,
    SessionSummary,
    SessionUpdate,
    StateCacheOut,
    StateCacheResponse,
    StateCacheUpdate,
)
from deckster.schemas.upload import FileListResponse, UploadedFileOut
from deckster.services.accounts import get_or_create_user

logger = structlog.get_logger()

router = APIRouter(prefix="/sessions")


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    status: str = Query(default="active"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionListResponse:
    """
    List the caller's sessions with a given status.

    Ghost sessions (no messages and older than ``GHOST_SESSION_DAYS``) are
    hidden regardless of status. Ordered by most recent activity.
    """
    limit = min(limit, 100)
    ghost_cutoff = utcnow() - timedelta(days=settings.ghost_session_days)
    filters = (
        ChatSession.user_id == user.id,
        ChatSession.status == status,
        or_(
            ChatSession.last_message_at.is_not(None),
            ChatSession.created_at >= ghost_cutoff,
        ),
    )

    result = await db.execute(
        select(ChatSession)
        .where(*filters)
        .order_by(
            ChatSession.last_message_at.desc().nulls_last(),
            ChatSession.created_at.desc(),
        )
        .limit(limit)
        .offset(offset)
    )
    sessions = list(result.scalars().all())

    total = (
        await db.execute(select(func.count()).select_from(ChatSession).where(*filters))
    ).scalar_one()

    # Latest message per session for list previews
    latest: dict[str, ChatMessage] = {}
    if sessions:
        ranked = (
            select(
                ChatMessage.id,
                func.row_number()
                .over(partition_by=ChatMessage.session_id, order_by=ChatMessage.timestamp.desc())
                .label("rank"),
            )
            .where(ChatMessage.session_id.in_([s.id for s in sessions]))
            .subquery()
        )
        messages = await db.execute(
            select(ChatMessage).join(ranked, ChatMessage.id == ranked.c.id).where(ranked.c.rank == 1)
        )
        latest = {m.session_id: m for m in messages.scalars().all()}

    summaries = []
    for s in sessions:
        summary = SessionSummary.model_validate(s)
        if s.id in latest:
            summary.last_message = MessageOut.model_validate(latest[s.id])
        summaries.append(summary)

    return SessionListResponse(
        sessions=summaries,
        pagination=Pagination(
            total=total, limit=limit, offset=offset, has_more=offset + limit < total
        ),
    )


@router.post("", status_code=201, response_model=SessionResponse)
async def create_session(
    body: SessionCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a session for a builder conversation.

    The id comes from the builder. Re-sending an existing id returns 409 with
    the stored session. The user row is created here if sign-in left it
    missing.
    """
    try:
        user, created = await get_or_create_user(db, principal.email, principal.name, principal.image)
    except Exception as e:
        logger.error("Failed to create user", email=principal.email, error=str(e))
        raise HTTPException(status_code=500, detail=server_error("Failed to create user account", e))
    if created:
        logger.warning("User missing at session creation, created", user_id=user.id)

    existing = await db.get(ChatSession, body.session_id)
    if existing is not None:
        return _conflict(existing, user)

    chat_session = ChatSession(
        id=body.session_id,
        user_id=user.id,
        title=body.title,
        current_stage=1,
        status=body.status,
    )
    db.add(chat_session)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await db.get(ChatSession, body.session_id)
        if existing is None:
            raise
        return _conflict(existing, user)

    await db.refresh(chat_session)
    logger.info("Session created", session_id=chat_session.id, user_id=user.id, status=chat_session.status)
    return SessionResponse(session=SessionOut.model_validate(chat_session))


def _conflict(existing: ChatSession, user: User) -> JSONResponse:
    content: dict = {"error": "Session already exists"}
    if existing.user_id == user.id:
        content["session"] = SessionOut.model_validate(existing).model_dump(mode="json", by_alias=True)
    return JSONResponse(status_code=409, content=content)


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionDetailResponse:
    """Fetch a session with its messages (oldest first) and cached UI state."""
    chat_session = await get_owned_session(db, session_id, user, with_history=True)
    return SessionDetailResponse(session=SessionDetail.model_validate(chat_session))


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    body: SessionUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Update client-editable session metadata."""
    chat_session = await get_owned_session(db, session_id, user)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(chat_session, field, value)
    chat_session.updated_at = utcnow()

    await db.commit()
    await db.refresh(chat_session)
    return SessionResponse(session=SessionOut.model_validate(chat_session))


@router.delete("/{session_id}", response_model=SessionResponse)
async def delete_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Soft-delete a session."""
    chat_session = await get_owned_session(db, session_id, user)

    chat_session.status = "deleted"
    chat_session.updated_at = utcnow()
    await db.commit()
    await db.refresh(chat_session)

    logger.info("Session deleted", session_id=session_id, user_id=user.id)
    return SessionResponse(session=SessionOut.model_validate(chat_session))


@router.post("/{session_id}/activate", response_model=ActivationResponse)
async def activate_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ActivationResponse:
    """
    Move a draft session to active when its first message is sent.

    Idempotent: an already active session with ``firstMessageAt`` set is
    returned unchanged.
    """
    chat_session = await get_owned_session(db, session_id, user)

    if chat_session.status == "active" and chat_session.first_message_at is not None:
        return ActivationResponse(
            message="Session already active",
            session=ActivationState.model_validate(chat_session),
        )

    try:
        previous_status = chat_session.status
        now = utcnow()
        chat_session.status = "active"
        chat_session.first_message_at = now
        chat_session.last_message_at = now
        await db.commit()
        await db.refresh(chat_session)
    except Exception as e:
        logger.error("Session activation failed", session_id=session_id, error=str(e))
        raise HTTPException(status_code=500, detail=server_error("Failed to activate session", e))

    logger.info(
        "Session activated",
        session_id=session_id,
        previous_status=previous_status,
        first_message_at=now.isoformat(),
    )
    return ActivationResponse(
        message="Session activated successfully",
        session=ActivationState.model_validate(chat_session),
    )


@router.get("/{session_id}/files", response_model=FileListResponse)
async def list_session_files(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> FileListResponse:
    """List files uploaded to a session."""
    await get_owned_session(db, session_id, user, hide_foreign=True)

    result = await db.execute(
        select(UploadedFile)
        .where(UploadedFile.session_id == session_id)
        .order_by(UploadedFile.uploaded_at.asc())
    )
    return FileListResponse(
        files=[UploadedFileOut.model_validate(f) for f in result.scalars().all()]
    )


@router.put("/{session_id}/state", response_model=StateCacheResponse)
async def save_session_state(
    session_id: str,
    body: StateCacheUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> StateCacheResponse:
    """Store the builder's last known state for fast session restore."""
    await get_owned_session(db, session_id, user)

    values = body.model_dump(exclude_unset=True)
    insert = insert_for(db)
    stmt = insert(SessionStateCache).values(
        session_id=session_id, updated_at=utcnow(), **values
    ).on_conflict_do_update(
        index_elements=["session_id"],
        set_={**values, "updated_at": utcnow()},
    )
    await db.execute(stmt)
    await db.commit()

    cache = await db.get(SessionStateCache, session_id, populate_existing=True)
    return StateCacheResponse(state_cache=StateCacheOut.model_validate(cache))
