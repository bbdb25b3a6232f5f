"""Sign-in endpoint."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from deckster.auth import create_access_token
from deckster.database import get_db
from deckster.errors import server_error
from deckster.schemas.auth import GoogleSignInRequest, SignInResponse
from deckster.services.accounts import get_active_subscription, sign_in
from deckster.services.google_oauth import (
    GoogleAuthError,
    GoogleOAuthClient,
    get_google_oauth_client,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


@router.post("/google", response_model=SignInResponse)
async def google_sign_in(
    body: GoogleSignInRequest,
    db: AsyncSession = Depends(get_db),
    google: GoogleOAuthClient = Depends(get_google_oauth_client),
) -> SignInResponse:
    """
    Exchange a Google ID token for an API token.

    The token's claims are filled from the database (tier, approval,
    subscription status). ``redirect`` tells the front end where to go next.
    """
    try:
        claims = await google.verify_id_token(body.id_token)
    except GoogleAuthError as e:
        logger.warning("Google sign-in rejected", reason=str(e))
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        user, redirect = await sign_in(db, claims["email"], claims.get("name"), claims.get("picture"))
        subscription = await get_active_subscription(db, user.id)
    except Exception as e:
        await db.rollback()
        logger.error("Sign-in failed", email=claims["email"], error=str(e))
        raise HTTPException(status_code=500, detail=server_error("Sign-in failed", e))

    token = create_access_token(user, subscription.status if subscription else None)
    logger.info("User signed in", user_id=user.id, redirect=redirect)
    return SignInResponse(redirect=redirect, access_token=token)
