"""
Stripe billing: checkout, customer linkage and webhook event handling.

Webhook events are applied to the local ``subscriptions``/``payments`` tables
and to the user's tier. Every handler is an upsert keyed by a Stripe id, and
each processed event id is recorded in ``stripe_events``, so a redelivered
event is acknowledged without touching anything twice.
"""

import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.config import settings
from deckster.database import insert_for, utcnow
from deckster.models import Payment, StripeEvent, Subscription, User

logger = structlog.get_logger()

ACTIVE_STATUSES = ("active", "trialing")


class WebhookSignatureError(Exception):
    """Raised when a webhook payload fails signature verification."""


def _get_stripe():
    """Return the stripe module configured with the secret key."""
    if not settings.stripe_secret_key:
        raise RuntimeError("STRIPE_SECRET_KEY is not set in environment variables")
    stripe.api_key = settings.stripe_secret_key
    return stripe


def _ts(value: int | None) -> datetime | None:
    """Convert a Stripe unix timestamp."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def derive_plan(price_id: str | None) -> tuple[str, str]:
    """Map a Stripe price id to ``(tier, billing_cycle)``."""
    billing_cycle = "monthly"
    if price_id and price_id == settings.stripe_pro_yearly_price_id:
        billing_cycle = "yearly"
    return "pro", billing_cycle


def verify_webhook(payload: bytes, signature: str) -> dict:
    """Verify the ``Stripe-Signature`` header and return the decoded event."""
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature, settings.stripe_webhook_secret
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
        raise WebhookSignatureError(str(e)) from e
    try:
        return json.loads(payload)
    except ValueError as e:
        raise WebhookSignatureError(f"Invalid payload: {e}") from e


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def allowed_price_ids() -> set[str]:
    return {
        p for p in (settings.stripe_pro_monthly_price_id, settings.stripe_pro_yearly_price_id) if p
    }


async def get_or_create_customer(db: AsyncSession, user: User) -> str:
    """Return the user's Stripe customer id, creating the customer on first use."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = await _get_stripe().Customer.create_async(
        email=user.email,
        name=user.name or None,
        metadata={"userId": user.id},
    )
    user.stripe_customer_id = customer.id
    await db.commit()
    logger.info("Created Stripe customer", user_id=user.id, customer_id=customer.id)
    return customer.id


async def create_checkout_session(
    db: AsyncSession, user: User, price_id: str, billing_cycle: str
):
    """Create a subscription Checkout Session for the user."""
    customer_id = await get_or_create_customer(db, user)
    return await _get_stripe().checkout.Session.create_async(
        customer=customer_id,
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{settings.app_url}/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.app_url}/pricing?canceled=true",
        metadata={"userId": user.id, "billingCycle": billing_cycle},
        allow_promotion_codes=True,
        billing_address_collection="auto",
        customer_update={"address": "auto"},
    )


# ---------------------------------------------------------------------------
# Webhook handlers
# ---------------------------------------------------------------------------

async def _user_by_customer(db: AsyncSession, customer_id: str | None) -> User | None:
    if not customer_id:
        return None
    result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
    return result.scalar_one_or_none()


async def handle_checkout_completed(db: AsyncSession, session: dict) -> None:
    user_id = (session.get("metadata") or {}).get("userId")
    if not user_id:
        logger.error("No userId in checkout session metadata", checkout_session=session.get("id"))
        return
    # The subscription row arrives with customer.subscription.created
    logger.info(
        "Checkout completed",
        user_id=user_id,
        subscription_id=session.get("subscription"),
    )


async def handle_subscription_updated(db: AsyncSession, subscription: dict) -> None:
    customer_id = subscription.get("customer")
    user: User | None = None

    user_id = (subscription.get("metadata") or {}).get("userId")
    if user_id:
        user = await db.get(User, user_id)
    if user is None:
        user = await _user_by_customer(db, customer_id)
    if user is None:
        logger.error("No user found for subscription", subscription_id=subscription["id"])
        return

    items = (subscription.get("items") or {}).get("data") or [{}]
    item = items[0]
    price = item.get("price") or {}
    price_id = price.get("id")
    product = price.get("product")
    product_id = product.get("id") if isinstance(product, dict) else product

    # Newer API versions carry the billing period on the item
    period_start = subscription.get("current_period_start") or item.get("current_period_start")
    period_end = subscription.get("current_period_end") or item.get("current_period_end")
    if period_start is None or period_end is None:
        raise ValueError(f"Subscription {subscription['id']} has no billing period")

    tier, billing_cycle = derive_plan(price_id)
    status = subscription["status"]

    mutable = {
        "status": status,
        "stripe_price_id": price_id or "",
        "stripe_product_id": product_id or "",
        "current_period_start": _ts(period_start),
        "current_period_end": _ts(period_end),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "canceled_at": _ts(subscription.get("canceled_at")),
        "trial_start": _ts(subscription.get("trial_start")),
        "trial_end": _ts(subscription.get("trial_end")),
    }
    insert = insert_for(db)
    stmt = insert(Subscription).values(
        user_id=user.id,
        stripe_subscription_id=subscription["id"],
        stripe_customer_id=customer_id,
        tier=tier,
        billing_cycle=billing_cycle,
        **mutable,
    ).on_conflict_do_update(
        index_elements=["stripe_subscription_id"],
        set_={**mutable, "updated_at": utcnow()},
    )
    await db.execute(stmt)

    new_tier = tier if status in ACTIVE_STATUSES else "free"
    user.tier = new_tier
    user.stripe_customer_id = user.stripe_customer_id or customer_id
    user.stripe_subscription_id = subscription["id"]
    user.stripe_price_id = price_id
    user.stripe_current_period_end = _ts(period_end)

    logger.info(
        "Subscription synced",
        user_id=user.id,
        subscription_id=subscription["id"],
        status=status,
        tier=new_tier,
    )


async def handle_subscription_deleted(db: AsyncSession, subscription: dict) -> None:
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == subscription["id"])
    )
    local = result.scalar_one_or_none()
    if local is not None:
        local.status = "canceled"
        local.canceled_at = utcnow()
    else:
        logger.warning("Deleted subscription was never synced", subscription_id=subscription["id"])

    user = await _user_by_customer(db, subscription.get("customer"))
    if user is None:
        logger.error("No user found for deleted subscription", subscription_id=subscription["id"])
        return

    user.tier = "free"
    user.stripe_subscription_id = None
    user.stripe_price_id = None
    user.stripe_current_period_end = None
    logger.info("User downgraded to free tier", user_id=user.id)


async def _record_payment(db: AsyncSession, invoice: dict, status: str, amount: int) -> None:
    user = await _user_by_customer(db, invoice.get("customer"))
    if user is None:
        logger.error("No user found for invoice", invoice_id=invoice["id"])
        return

    values = {
        "user_id": user.id,
        "stripe_payment_intent_id": invoice.get("payment_intent"),
        "stripe_subscription_id": invoice.get("subscription"),
        "amount": amount or 0,
        "currency": invoice.get("currency") or "usd",
        "status": status,
        "invoice_url": invoice.get("hosted_invoice_url"),
        "invoice_pdf": invoice.get("invoice_pdf"),
    }
    insert = insert_for(db)
    stmt = insert(Payment).values(stripe_invoice_id=invoice["id"], **values).on_conflict_do_update(
        index_elements=["stripe_invoice_id"],
        set_=values,
    )
    await db.execute(stmt)
    logger.info("Payment recorded", user_id=user.id, invoice_id=invoice["id"], status=status)


async def handle_invoice_paid(db: AsyncSession, invoice: dict) -> None:
    await _record_payment(db, invoice, "paid", invoice.get("amount_paid"))


async def handle_invoice_failed(db: AsyncSession, invoice: dict) -> None:
    await _record_payment(db, invoice, "failed", invoice.get("amount_due"))


EVENT_HANDLERS: dict[str, Callable[[AsyncSession, dict], Awaitable[None]]] = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_failed,
}


async def process_event(db: AsyncSession, event: dict) -> str:
    """
    Apply a verified webhook event.

    Returns one of ``processed``, ``duplicate``, ``ignored`` or ``failed``.
    Handler failures are logged and rolled back, never raised, so the
    endpoint still acknowledges the delivery.
    """
    event_id = event.get("id")
    event_type = event.get("type", "")

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("Unhandled webhook event type", event_type=event_type, event_id=event_id)
        return "ignored"

    if event_id and await db.get(StripeEvent, event_id) is not None:
        logger.info("Duplicate webhook event", event_type=event_type, event_id=event_id)
        return "duplicate"

    try:
        await handler(db, event["data"]["object"])
        if event_id:
            db.add(StripeEvent(event_id=event_id, event_type=event_type))
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # A concurrent delivery of the same event may have won the race
        if event_id and await db.get(StripeEvent, event_id) is not None:
            logger.info("Webhook event already recorded", event_type=event_type, event_id=event_id)
            return "duplicate"
        logger.error(
            "Webhook handler failed",
            event_type=event_type,
            event_id=event_id,
            error=str(e),
        )
        return "failed"
    except Exception as e:
        await db.rollback()
        logger.error(
            "Webhook handler failed",
            event_type=event_type,
            event_id=event_id,
            error=str(e),
        )
        return "failed"

    logger.info("Webhook event processed", event_type=event_type, event_id=event_id)
    return "processed"
