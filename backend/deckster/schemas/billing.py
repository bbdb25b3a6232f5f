"""Billing Pydantic schemas."""

from datetime import datetime
from typing import Literal

from deckster.schemas.common import CamelModel


class CheckoutRequest(CamelModel):
    price_id: str
    billing_cycle: Literal["monthly", "yearly"] = "monthly"


class CheckoutResponse(CamelModel):
    session_id: str
    url: str | None = None


class SubscriptionOut(CamelModel):
    id: str
    stripe_subscription_id: str
    stripe_price_id: str
    status: str
    tier: str
    billing_cycle: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    canceled_at: datetime | None = None
    trial_end: datetime | None = None


class SubscriptionResponse(CamelModel):
    subscription: SubscriptionOut | None = None
