"""
Pytest configuration for Deckster tests.
Points the app at a throwaway SQLite database and fixes the shared secrets.
"""

import asyncio
import os
import tempfile

# Must be set before any deckster imports (settings are read at import time)
_test_data_dir = tempfile.mkdtemp(prefix="deckster_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_data_dir}/test.db"
os.environ["ENVIRONMENT"] = "development"
os.environ["NEXTAUTH_SECRET"] = "test-nextauth-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["DEV_BYPASS_EMAIL"] = "admin@deckster.test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_PRO_MONTHLY_PRICE_ID"] = "price_pro_monthly"
os.environ["STRIPE_PRO_YEARLY_PRICE_ID"] = "price_pro_yearly"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"

import pytest
from fastapi.testclient import TestClient

import deckster.models  # noqa: F401 - register all models on Base.metadata
from deckster.auth import create_access_token
from deckster.database import Base, async_session_maker, engine
from deckster.main import app
from deckster.models import User


def run(coro):
    """Run a coroutine from a synchronous test."""
    return asyncio.run(coro)


async def _reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def _add(*objects):
    async with async_session_maker() as db:
        db.add_all(objects)
        await db.commit()
        for obj in objects:
            await db.refresh(obj)
    return objects


def add(*objects):
    """Persist ORM objects and return them refreshed."""
    return run(_add(*objects))


async def _fetch(model, key):
    async with async_session_maker() as db:
        return await db.get(model, key)


def fetch(model, key):
    """Load a row in a fresh session."""
    return run(_fetch(model, key))


async def _query(stmt):
    async with async_session_maker() as db:
        return list((await db.execute(stmt)).scalars().all())


def query(stmt):
    return run(_query(stmt))


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture(autouse=True)
def reset_db():
    run(_reset_schema())
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user():
    (created,) = add(User(id="user-1", email="ada@example.com", name="Ada", approved=True))
    return created


@pytest.fixture
def other_user():
    (created,) = add(User(id="user-2", email="grace@example.com", name="Grace", approved=True))
    return created


@pytest.fixture
def admin_user():
    (created,) = add(User(id="admin-1", email="admin@deckster.test", name="Admin", approved=True))
    return created
