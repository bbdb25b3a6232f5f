"""Session UI state cache model."""

from datetime import datetime
from typing import Any, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deckster.database import Base, JSONType, utcnow

if TYPE_CHECKING:
    from deckster.models.chat_session import ChatSession


class SessionStateCache(Base):
    """Last-known builder state for a session (one row per session)."""

    __tablename__ = "session_state_cache"

    session_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("chat_session.id", ondelete="CASCADE"), primary_key=True
    )
    active_version: Mapped[str | None] = mapped_column(String(20), nullable=True)
    slide_structure: Mapped[Any] = mapped_column(JSONType, nullable=True)
    presentation_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship(
        "ChatSession", back_populates="state_cache"
    )
