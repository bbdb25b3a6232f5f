"""Stripe checkout, subscription lookup and webhook endpoints."""

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.auth import get_current_user
from deckster.database import get_db
from deckster.models import User
from deckster.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionOut,
    SubscriptionResponse,
)
from deckster.services import billing
from deckster.services.accounts import get_active_subscription

logger = structlog.get_logger()

router = APIRouter()


@router.post("/stripe/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    """Start a Stripe Checkout for one of the Pro plans."""
    if body.price_id not in billing.allowed_price_ids():
        raise HTTPException(status_code=400, detail="Invalid price ID")

    try:
        checkout = await billing.create_checkout_session(
            db, user, body.price_id, body.billing_cycle
        )
    except Exception as e:
        logger.error("Error creating checkout session", user_id=user.id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create checkout session")

    logger.info("Checkout session created", user_id=user.id, checkout_session=checkout.id)
    return CheckoutResponse(session_id=checkout.id, url=checkout.url)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionResponse:
    """The caller's active or trialing subscription, or null."""
    subscription = await get_active_subscription(db, user.id)
    return SubscriptionResponse(
        subscription=SubscriptionOut.model_validate(subscription) if subscription else None
    )


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Receive Stripe events.

    Returns 400 when the signature does not verify. Once it does, the
    delivery is always acknowledged with 200; handler failures are logged.
    """
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="No signature")

    payload = await request.body()
    try:
        event = billing.verify_webhook(payload, stripe_signature)
    except billing.WebhookSignatureError as e:
        logger.warning("Webhook signature verification failed", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid signature")

    logger.info("Webhook received", event_type=event.get("type"), event_id=event.get("id"))
    outcome = await billing.process_event(db, event)
    return {"received": True, "status": outcome}
