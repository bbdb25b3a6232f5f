"""Pydantic schemas for API request/response models."""

from deckster.schemas.session import (
    SessionCreate,
    SessionUpdate,
    SessionOut,
    SessionDetail,
    SessionListResponse,
    ActivationResponse,
)
from deckster.schemas.message import MessageIn, MessageBatch, BatchSaveResponse, MessageListResponse

__all__ = [
    "SessionCreate",
    "SessionUpdate",
    "SessionOut",
    "SessionDetail",
    "SessionListResponse",
    "ActivationResponse",
    "MessageIn",
    "MessageBatch",
    "BatchSaveResponse",
    "MessageListResponse",
]
