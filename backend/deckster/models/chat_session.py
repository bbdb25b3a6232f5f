"""Chat session database model."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deckster.database import Base, utcnow

if TYPE_CHECKING:
    from deckster.models.user import User
    from deckster.models.chat_message import ChatMessage
    from deckster.models.uploaded_file import UploadedFile
    from deckster.models.session_state_cache import SessionStateCache


class ChatSession(Base):
    """One presentation-building conversation.

    Lifecycle: ``draft`` until the first message is sent, then ``active``.
    ``deleted`` is a soft marker; only the cleanup job hard-deletes rows.
    """

    __tablename__ = "chat_session"

    # Client-generated id (the builder's WebSocket session id)
    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    current_stage: Mapped[int] = mapped_column(Integer, default=1)

    first_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Presentation artifacts
    strawman_preview_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    strawman_presentation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    refined_preview_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    refined_presentation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    final_presentation_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_presentation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    slide_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)

    # File Search Store backing this session's uploads
    gemini_store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gemini_store_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="sessions")
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.timestamp",
    )
    uploaded_files: Mapped[list["UploadedFile"]] = relationship(
        "UploadedFile", back_populates="session", cascade="all, delete-orphan"
    )
    state_cache: Mapped["SessionStateCache | None"] = relationship(
        "SessionStateCache",
        back_populates="session",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_chat_session_user_status", "user_id", "status"),
        Index("idx_chat_session_cleanup", "status", "created_at"),
    )
