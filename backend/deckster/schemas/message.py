"""Chat message Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import Field

from deckster.schemas.common import CamelModel, Pagination


class MessageIn(CamelModel):
    """Message as sent by the builder (id is client-generated)."""

    id: str = Field(min_length=1, max_length=100)
    message_type: str = Field(min_length=1, max_length=50)
    timestamp: datetime
    payload: Any = None
    user_text: str | None = None


class MessageBatch(CamelModel):
    """Batch of messages to upsert."""

    messages: list[MessageIn] = Field(default_factory=list)


class MessageOut(CamelModel):
    """Stored chat message."""

    id: str
    session_id: str
    message_type: str
    timestamp: datetime
    payload: Any = None
    user_text: str | None = None


class BatchSaveResponse(CamelModel):
    """Per-batch upsert outcome."""

    saved: int
    failed: int
    total: int


class MessageListResponse(CamelModel):
    messages: list[MessageOut]
    pagination: Pagination
