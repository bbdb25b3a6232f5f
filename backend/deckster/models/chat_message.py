"""Chat message database model."""

from datetime import datetime
from typing import Any, TYPE_CHECKING

from sqlalchemy import String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deckster.database import Base, JSONType, utcnow

if TYPE_CHECKING:
    from deckster.models.chat_session import ChatSession


class ChatMessage(Base):
    """Message exchanged in a chat session, keyed by the client message id."""

    __tablename__ = "chat_message"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("chat_session.id", ondelete="CASCADE"), nullable=False
    )

    message_type: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[Any] = mapped_column(JSONType, nullable=True)
    user_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship("ChatSession", back_populates="messages")

    __table_args__ = (
        Index("idx_chat_message_session_time", "session_id", "timestamp"),
    )
