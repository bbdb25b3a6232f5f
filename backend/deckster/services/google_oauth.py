"""Google ID token verification."""

import httpx
import structlog

from deckster.config import settings

logger = structlog.get_logger()

TRUSTED_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}


class GoogleAuthError(Exception):
    """Raised when an ID token cannot be verified."""


class GoogleOAuthClient:
    """Verifies Google ID tokens through the tokeninfo endpoint."""

    TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

    def __init__(
        self,
        client_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id or settings.google_client_id
        self._transport = transport

    async def verify_id_token(self, id_token: str) -> dict:
        """
        Verify an ID token and return its claims.

        Returns:
            Dict with at least ``email``, and ``name``/``picture`` when present

        Raises:
            GoogleAuthError: token rejected, wrong audience or unverified email
        """
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    self.TOKENINFO_URL,
                    params={"id_token": id_token},
                    timeout=10.0,
                )
        except httpx.TransportError as e:
            raise GoogleAuthError(f"Could not reach Google: {e}") from e

        if response.status_code != 200:
            raise GoogleAuthError("Invalid ID token")

        claims = response.json()
        if claims.get("aud") != self.client_id:
            raise GoogleAuthError("ID token was issued for a different client")
        if claims.get("iss") not in TRUSTED_ISSUERS:
            raise GoogleAuthError("Untrusted token issuer")
        if not claims.get("email") or str(claims.get("email_verified")).lower() != "true":
            raise GoogleAuthError("Email address is not verified")

        logger.info("Verified Google ID token", email=claims["email"])
        return claims


def get_google_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient()
