"""Bearer-token authentication for API routes.

Tokens are HS256 JWTs signed with ``NEXTAUTH_SECRET``. The claims mirror what
the sign-in flow puts in the front end's session: user id, email, tier,
approval flag and subscription status.
"""

from dataclasses import dataclass
from datetime import timedelta

import jwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.config import settings
from deckster.database import get_db, utcnow
from deckster.models import User

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Identity carried by a verified access token."""

    email: str
    user_id: str | None = None
    name: str | None = None
    image: str | None = None
    tier: str = "free"
    approved: bool = False
    subscription_status: str | None = None


def create_access_token(
    user: User,
    subscription_status: str | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """Issue a signed token for a user."""
    now = utcnow()
    expires = now + (expires_in or timedelta(minutes=settings.jwt_expire_minutes))
    claims = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "picture": user.image,
        "tier": user.tier or "free",
        "approved": bool(user.approved),
        "subscriptionStatus": subscription_status,
        "iat": now,
        "exp": expires,
    }
    return jwt.encode(claims, settings.nextauth_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    """Verify a token and return its principal. Raises ``jwt.PyJWTError``."""
    claims = jwt.decode(
        token,
        settings.nextauth_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["email", "exp"]},
    )
    return Principal(
        email=claims["email"],
        user_id=claims.get("sub"),
        name=claims.get("name"),
        image=claims.get("picture"),
        tier=claims.get("tier") or "free",
        approved=bool(claims.get("approved", False)),
        subscription_status=claims.get("subscriptionStatus"),
    )


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Require a valid bearer token."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return decode_access_token(credentials.credentials)
    except jwt.PyJWTError as e:
        logger.warning("Rejected access token", reason=str(e))
        raise HTTPException(status_code=401, detail="Unauthorized")


async def get_current_user(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller's User row by email."""
    result = await db.execute(select(User).where(User.email == principal.email))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """Admin access is granted to the configured bypass account only."""
    if not settings.dev_bypass_email or principal.email != settings.dev_bypass_email:
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")
    return principal
