"""User account lookups and the sign-in decision."""

from datetime import timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.config import settings
from deckster.database import as_utc, utcnow
from deckster.models import Subscription, User

logger = structlog.get_logger()

PENDING_REDIRECT = "/auth/pending"
BUILDER_REDIRECT = "/builder"
NEW_USER_WINDOW = timedelta(minutes=5)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_or_create_user(
    db: AsyncSession, email: str, name: str | None = None, image: str | None = None
) -> tuple[User, bool]:
    """Return the user for an email, creating an unapproved free-tier row if missing."""
    user = await get_user_by_email(db, email)
    if user is not None:
        return user, False

    user = User(email=email, name=name, image=image, tier="free", approved=False)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created user", user_id=user.id, email=email)
    return user, True


async def get_active_subscription(db: AsyncSession, user_id: str) -> Subscription | None:
    """The user's active or trialing subscription, if any."""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(("active", "trialing")),
        )
        .order_by(Subscription.current_period_end.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def sign_in(
    db: AsyncSession, email: str, name: str | None = None, image: str | None = None
) -> tuple[User, str]:
    """
    Decide where a freshly authenticated user goes.

    - The dev bypass account is auto-approved and goes straight to the builder
    - New and unapproved users wait on the pending page
    - Approved users created in the last few minutes get the onboarding flag
    """
    user, created = await get_or_create_user(db, email, name, image)

    if settings.dev_bypass_email and email == settings.dev_bypass_email:
        if not user.approved:
            user.approved = True
            user.approved_at = utcnow()
            user.approved_by = "dev-bypass"
            await db.commit()
        logger.info("Dev bypass sign-in", email=email)
        return user, BUILDER_REDIRECT

    if created:
        logger.info("New user signup", email=email)
        return user, PENDING_REDIRECT

    if not user.approved:
        logger.info("Unapproved user attempted login", email=email)
        return user, PENDING_REDIRECT

    if as_utc(user.created_at) > utcnow() - NEW_USER_WINDOW:
        return user, f"{BUILDER_REDIRECT}?new=true"
    return user, BUILDER_REDIRECT
