"""SQLAlchemy database models."""

from deckster.models.user import User
from deckster.models.chat_session import ChatSession
from deckster.models.chat_message import ChatMessage
from deckster.models.uploaded_file import UploadedFile
from deckster.models.session_state_cache import SessionStateCache
from deckster.models.subscription import Subscription
from deckster.models.payment import Payment
from deckster.models.stripe_event import StripeEvent

__all__ = [
    "User",
    "ChatSession",
    "ChatMessage",
    "UploadedFile",
    "SessionStateCache",
    "Subscription",
    "Payment",
    "StripeEvent",
]
