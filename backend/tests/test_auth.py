"""Tests for sign-in, tokens and the protected-page gate."""

from datetime import timedelta

import httpx
import pytest

from conftest import add, fetch
from deckster.auth import create_access_token, decode_access_token
from deckster.database import utcnow
from deckster.main import app
from deckster.models import Subscription, User
from deckster.services.google_oauth import (
    GoogleAuthError,
    GoogleOAuthClient,
    get_google_oauth_client,
)

CLIENT_ID = "test-client-id.apps.googleusercontent.com"


class FakeGoogle:
    def __init__(self, claims: dict | None = None, error: str | None = None):
        self.claims = claims
        self.error = error

    async def verify_id_token(self, id_token):
        if self.error:
            raise GoogleAuthError(self.error)
        return self.claims


def _google(email, name="Someone"):
    fake = FakeGoogle({"email": email, "name": name, "picture": "https://img.example/p.png"})
    app.dependency_overrides[get_google_oauth_client] = lambda: fake


class TestGoogleSignIn:
    def test_new_user_waits_for_approval(self, client):
        _google("new@example.com")

        response = client.post("/api/auth/google", json={"idToken": "tok"})

        assert response.status_code == 200
        body = response.json()
        assert body["redirect"] == "/auth/pending"
        principal = decode_access_token(body["accessToken"])
        assert principal.email == "new@example.com"
        assert principal.approved is False
        assert principal.tier == "free"

    def test_unapproved_user_waits(self, client):
        add(User(id="u1", email="wait@example.com", approved=False))
        _google("wait@example.com")

        response = client.post("/api/auth/google", json={"idToken": "tok"})

        assert response.json()["redirect"] == "/auth/pending"

    def test_recently_approved_user_gets_onboarding(self, client):
        add(User(id="u1", email="fresh@example.com", approved=True))
        _google("fresh@example.com")

        response = client.post("/api/auth/google", json={"idToken": "tok"})

        assert response.json()["redirect"] == "/builder?new=true"

    def test_established_user_goes_to_builder(self, client):
        add(User(id="u1", email="old@example.com", approved=True, tier="pro",
                 created_at=utcnow() - timedelta(days=3)))
        now = utcnow()
        add(Subscription(
            user_id="u1",
            stripe_subscription_id="sub_1",
            stripe_customer_id="cus_1",
            stripe_price_id="price_pro_monthly",
            stripe_product_id="prod_pro",
            status="trialing",
            tier="pro",
            billing_cycle="monthly",
            current_period_start=now,
            current_period_end=now + timedelta(days=14),
        ))
        _google("old@example.com")

        response = client.post("/api/auth/google", json={"idToken": "tok"})

        body = response.json()
        assert body["redirect"] == "/builder"
        principal = decode_access_token(body["accessToken"])
        assert principal.user_id == "u1"
        assert principal.tier == "pro"
        assert principal.approved is True
        assert principal.subscription_status == "trialing"

    def test_dev_bypass_is_auto_approved(self, client):
        _google("admin@deckster.test")

        response = client.post("/api/auth/google", json={"idToken": "tok"})

        assert response.json()["redirect"] == "/builder"
        user = fetch(User, decode_access_token(response.json()["accessToken"]).user_id)
        assert user.approved is True
        assert user.approved_by == "dev-bypass"

    def test_rejected_token(self, client):
        app.dependency_overrides[get_google_oauth_client] = lambda: FakeGoogle(error="Invalid ID token")

        response = client.post("/api/auth/google", json={"idToken": "bad"})

        assert response.status_code == 401


class TestGoogleOAuthClient:
    def _client(self, status=200, **claims):
        payload = {
            "aud": CLIENT_ID,
            "iss": "https://accounts.google.com",
            "email": "ada@example.com",
            "email_verified": "true",
            **claims,
        }
        transport = httpx.MockTransport(lambda request: httpx.Response(status, json=payload))
        return GoogleOAuthClient(client_id=CLIENT_ID, transport=transport)

    @pytest.mark.asyncio
    async def test_accepts_valid_token(self):
        claims = await self._client().verify_id_token("tok")

        assert claims["email"] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_rejects_other_audience(self):
        with pytest.raises(GoogleAuthError, match="different client"):
            await self._client(aud="someone-else").verify_id_token("tok")

    @pytest.mark.asyncio
    async def test_rejects_unverified_email(self):
        with pytest.raises(GoogleAuthError, match="not verified"):
            await self._client(email_verified="false").verify_id_token("tok")

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self):
        with pytest.raises(GoogleAuthError, match="Invalid ID token"):
            await self._client(status=400).verify_id_token("tok")


class TestRouteGate:
    def test_anonymous_redirected_to_sign_in(self, client):
        response = client.get("/builder", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/"

    def test_unapproved_redirected_to_pending(self, client):
        token = create_access_token(User(id="u1", email="wait@example.com", approved=False))

        client.cookies.set("deckster_token", token)
        response = client.get("/dashboard/overview", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/auth/pending"

    def test_approved_user_passes(self, client):
        token = create_access_token(User(id="u1", email="ok@example.com", approved=True))

        response = client.get(
            "/settings",
            headers={"Authorization": f"Bearer {token}"},
            follow_redirects=False,
        )

        # Gate passed; the page itself is served by the front end
        assert response.status_code == 404

    def test_unprotected_paths_untouched(self, client):
        response = client.get("/health")

        assert response.status_code == 200

    def test_prefix_must_match_segment(self, client):
        response = client.get("/builders-guide", follow_redirects=False)

        assert response.status_code == 404
