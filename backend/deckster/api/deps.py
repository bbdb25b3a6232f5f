"""Shared dependencies for session-scoped routes."""

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from deckster.models import ChatSession, User


async def get_owned_session(
    db: AsyncSession,
    session_id: str,
    user: User,
    with_history: bool = False,
    hide_foreign: bool = False,
) -> ChatSession:
    """
    Load a chat session and verify the caller owns it.

    Raises 404 when missing and 403 when owned by someone else, or 404 for
    both when ``hide_foreign`` is set.
    """
    options = []
    if with_history:
        options = [selectinload(ChatSession.messages), selectinload(ChatSession.state_cache)]
    chat_session = await db.get(ChatSession, session_id, options=options)

    if chat_session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if chat_session.user_id != user.id:
        if hide_foreign:
            raise HTTPException(status_code=404, detail="Session not found")
        raise HTTPException(status_code=403, detail="Forbidden")
    return chat_session
