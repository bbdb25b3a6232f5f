"""Chat session Pydantic schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field

from deckster.schemas.common import CamelModel, Pagination
from deckster.schemas.message import MessageOut


class SessionCreate(CamelModel):
    """Body of POST /sessions."""

    session_id: str = Field(min_length=1, max_length=100)
    title: str | None = Field(default=None, max_length=255)
    status: Literal["draft", "active"] = "draft"


class SessionUpdate(CamelModel):
    """Fields a client may change with PATCH. Anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, max_length=255)
    current_stage: int | None = Field(default=None, ge=1, le=6)
    strawman_preview_url: str | None = None
    strawman_presentation_id: str | None = None
    refined_preview_url: str | None = None
    refined_presentation_id: str | None = None
    final_presentation_url: str | None = None
    final_presentation_id: str | None = None
    slide_count: int | None = Field(default=None, ge=0)
    status: Literal["active", "archived", "deleted"] | None = None
    is_favorite: bool | None = None
    last_message_at: datetime | None = None


class StateCacheUpdate(CamelModel):
    """Body of PUT /sessions/{id}/state."""

    active_version: Literal["strawman", "refined", "final"] | None = None
    slide_structure: Any = None
    presentation_status: str | None = Field(default=None, max_length=50)


class StateCacheOut(CamelModel):
    session_id: str
    active_version: str | None = None
    slide_structure: Any = None
    presentation_status: str | None = None
    updated_at: datetime


class SessionOut(CamelModel):
    """Chat session metadata."""

    id: str
    user_id: str
    title: str | None = None
    status: str
    current_stage: int
    first_message_at: datetime | None = None
    last_message_at: datetime | None = None
    strawman_preview_url: str | None = None
    strawman_presentation_id: str | None = None
    refined_preview_url: str | None = None
    refined_presentation_id: str | None = None
    final_presentation_url: str | None = None
    final_presentation_id: str | None = None
    slide_count: int | None = None
    is_favorite: bool
    gemini_store_name: str | None = None
    created_at: datetime
    updated_at: datetime


class SessionSummary(SessionOut):
    """List entry with the latest message for previews."""

    last_message: MessageOut | None = None


class SessionDetail(SessionOut):
    """Session with its full message history and cached UI state."""

    messages: list[MessageOut] = Field(default_factory=list)
    state_cache: StateCacheOut | None = None


class SessionListResponse(CamelModel):
    sessions: list[SessionSummary]
    pagination: Pagination


class SessionResponse(CamelModel):
    session: SessionOut


class SessionDetailResponse(CamelModel):
    session: SessionDetail


class ActivationState(CamelModel):
    id: str
    status: str
    first_message_at: datetime | None = None
    last_message_at: datetime | None = None


class ActivationResponse(CamelModel):
    message: str
    session: ActivationState


class StateCacheResponse(CamelModel):
    state_cache: StateCacheOut
