"""Uploaded file metadata model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deckster.database import Base, utcnow

if TYPE_CHECKING:
    from deckster.models.chat_session import ChatSession

UPLOAD_STATUSES = ("uploading", "indexed", "failed")


class UploadedFile(Base):
    """Metadata for a file indexed in a session's File Search Store."""

    __tablename__ = "uploaded_file"

    id: Mapped[str] = mapped_column(
        String(50), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("chat_session.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )

    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    gemini_file_uri: Mapped[str] = mapped_column(Text, default="")
    gemini_file_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gemini_file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    gemini_store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    upload_status: Mapped[str] = mapped_column(String(20), default="uploading")
    upload_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship(
        "ChatSession", back_populates="uploaded_files"
    )
