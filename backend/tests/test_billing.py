"""Tests for Stripe webhooks, checkout and subscription lookup."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import add, auth_headers, fetch, query
from deckster.database import utcnow
from deckster.models import Payment, StripeEvent, Subscription, User
from deckster.services.billing import EVENT_HANDLERS

WEBHOOK_SECRET = "whsec_test_secret"
PERIOD_START = 1_790_000_000
PERIOD_END = PERIOD_START + 30 * 24 * 3600


def _signed(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    payload = json.dumps(event).encode()
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode(), f"{timestamp}.{payload.decode()}".encode(), hashlib.sha256
    ).hexdigest()
    return payload, {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def _post(client, event, secret=WEBHOOK_SECRET):
    payload, headers = _signed(event, secret)
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


def _subscription(status="active", price_id="price_pro_monthly", **extra):
    return {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "metadata": {"userId": "user-1"},
        "cancel_at_period_end": False,
        "canceled_at": None,
        "trial_start": None,
        "trial_end": None,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "items": {"data": [{"price": {"id": price_id, "product": "prod_pro"}}]},
        **extra,
    }


def _event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def _stripe_user(**kwargs):
    defaults = dict(id="user-1", email="ada@example.com", approved=True, stripe_customer_id="cus_1")
    defaults.update(kwargs)
    (user,) = add(User(**defaults))
    return user


class TestSignature:
    def test_missing_signature(self, client):
        response = client.post("/api/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        assert response.json() == {"error": "No signature"}

    def test_invalid_signature_writes_nothing(self, client):
        _stripe_user(tier="pro", stripe_subscription_id="sub_1")

        response = _post(
            client, _event("customer.subscription.deleted", _subscription()), secret="whsec_wrong"
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
        assert fetch(User, "user-1").tier == "pro"
        assert query(select(StripeEvent)) == []


class TestSubscriptionEvents:
    def test_created_upserts_subscription_and_upgrades(self, client):
        _stripe_user()

        response = _post(client, _event("customer.subscription.created", _subscription()))

        assert response.status_code == 200
        assert response.json()["received"] is True
        (sub,) = query(select(Subscription))
        assert sub.stripe_subscription_id == "sub_1"
        assert sub.tier == "pro"
        assert sub.billing_cycle == "monthly"
        assert sub.status == "active"
        user = fetch(User, "user-1")
        assert user.tier == "pro"
        assert user.stripe_subscription_id == "sub_1"
        assert user.stripe_price_id == "price_pro_monthly"

    def test_yearly_price_sets_cycle(self, client):
        _stripe_user()

        _post(client, _event("customer.subscription.created", _subscription(price_id="price_pro_yearly")))

        (sub,) = query(select(Subscription))
        assert sub.billing_cycle == "yearly"

    def test_updated_past_due_downgrades(self, client):
        _stripe_user()
        _post(client, _event("customer.subscription.created", _subscription()))

        _post(client, _event("customer.subscription.updated", _subscription(status="past_due"), "evt_2"))

        (sub,) = query(select(Subscription))
        assert sub.status == "past_due"
        assert fetch(User, "user-1").tier == "free"

    def test_deleted_downgrades_user(self, client):
        _stripe_user()
        _post(client, _event("customer.subscription.created", _subscription()))

        response = _post(
            client, _event("customer.subscription.deleted", _subscription(status="canceled"), "evt_2")
        )

        assert response.status_code == 200
        user = fetch(User, "user-1")
        assert user.tier == "free"
        assert user.stripe_subscription_id is None
        (sub,) = query(select(Subscription))
        assert sub.status == "canceled"
        assert sub.canceled_at is not None

    def test_deleted_without_local_subscription(self, client):
        _stripe_user(tier="pro", stripe_subscription_id="sub_1")

        response = _post(client, _event("customer.subscription.deleted", _subscription()))

        assert response.status_code == 200
        user = fetch(User, "user-1")
        assert user.tier == "free"
        assert user.stripe_subscription_id is None

    def test_redelivered_event_is_skipped(self, client):
        _stripe_user()
        event = _event("customer.subscription.created", _subscription())
        _post(client, event)

        response = _post(client, event)

        assert response.json()["status"] == "duplicate"
        assert len(query(select(Subscription))) == 1
        assert len(query(select(StripeEvent))) == 1

    def test_handler_failure_still_acknowledged(self, client):
        _stripe_user()
        broken = _subscription()
        del broken["status"]

        response = _post(client, _event("customer.subscription.created", broken))

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert query(select(StripeEvent)) == []

    def test_subscription_without_period_fails(self, client):
        _stripe_user()
        subscription = _subscription()
        del subscription["current_period_start"]
        del subscription["current_period_end"]

        response = _post(client, _event("customer.subscription.created", subscription))

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert query(select(StripeEvent)) == []
        assert query(select(Subscription)) == []
        assert fetch(User, "user-1").tier == "free"

    def test_constraint_violation_is_not_reported_as_duplicate(self, client):
        _stripe_user()

        async def violating(db, obj):
            raise IntegrityError("INSERT INTO subscriptions", {}, Exception("NOT NULL constraint failed"))

        with patch.dict(EVENT_HANDLERS, {"customer.subscription.created": violating}):
            response = _post(client, _event("customer.subscription.created", _subscription()))

        assert response.json()["status"] == "failed"
        assert query(select(StripeEvent)) == []


class TestInvoiceEvents:
    def _invoice(self, **extra):
        return {
            "id": "in_1",
            "customer": "cus_1",
            "subscription": "sub_1",
            "payment_intent": "pi_1",
            "amount_paid": 2900,
            "amount_due": 2900,
            "currency": "usd",
            "hosted_invoice_url": "https://invoice.stripe.com/i/in_1",
            "invoice_pdf": "https://invoice.stripe.com/i/in_1/pdf",
            **extra,
        }

    def test_paid_invoice_recorded(self, client):
        _stripe_user()

        _post(client, _event("invoice.payment_succeeded", self._invoice()))

        (payment,) = query(select(Payment))
        assert payment.status == "paid"
        assert payment.amount == 2900
        assert payment.user_id == "user-1"

    def test_failed_then_paid_keeps_one_row(self, client):
        _stripe_user()

        _post(client, _event("invoice.payment_failed", self._invoice(), "evt_1"))
        _post(client, _event("invoice.payment_succeeded", self._invoice(), "evt_2"))

        (payment,) = query(select(Payment))
        assert payment.status == "paid"

    def test_unknown_customer_is_ignored(self, client):
        _post(client, _event("invoice.payment_succeeded", self._invoice(customer="cus_unknown")))

        assert query(select(Payment)) == []


def test_unhandled_event_type(client):
    response = _post(client, _event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


class TestCheckout:
    def test_rejects_unknown_price(self, client, user):
        response = client.post(
            "/api/stripe/create-checkout-session",
            json={"priceId": "price_other", "billingCycle": "monthly"},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid price ID"}

    def test_creates_customer_and_session(self, client, user):
        customer = AsyncMock(return_value=SimpleNamespace(id="cus_new"))
        checkout = AsyncMock(
            return_value=SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")
        )

        with patch("stripe.Customer.create_async", customer), \
                patch("stripe.checkout.Session.create_async", checkout):
            response = client.post(
                "/api/stripe/create-checkout-session",
                json={"priceId": "price_pro_yearly", "billingCycle": "yearly"},
                headers=auth_headers(user),
            )

        assert response.status_code == 200
        assert response.json() == {
            "sessionId": "cs_test_1",
            "url": "https://checkout.stripe.com/c/cs_test_1",
        }
        assert fetch(User, user.id).stripe_customer_id == "cus_new"
        kwargs = checkout.call_args.kwargs
        assert kwargs["customer"] == "cus_new"
        assert kwargs["metadata"] == {"userId": user.id, "billingCycle": "yearly"}


class TestSubscriptionLookup:
    def test_no_subscription(self, client, user):
        response = client.get("/api/subscription", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json() == {"subscription": None}

    def test_active_subscription(self, client, user):
        now = utcnow()
        add(
            Subscription(
                user_id=user.id,
                stripe_subscription_id="sub_1",
                stripe_customer_id="cus_1",
                stripe_price_id="price_pro_monthly",
                stripe_product_id="prod_pro",
                status="active",
                tier="pro",
                billing_cycle="monthly",
                current_period_start=now,
                current_period_end=now + timedelta(days=30),
            )
        )

        response = client.get("/api/subscription", headers=auth_headers(user))

        assert response.json()["subscription"]["stripeSubscriptionId"] == "sub_1"
        assert response.json()["subscription"]["tier"] == "pro"
