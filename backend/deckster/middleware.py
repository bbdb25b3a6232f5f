"""Route gate for the signed-in areas of the app."""

import jwt
import structlog
from fastapi import Request
from fastapi.responses import RedirectResponse

from deckster.auth import decode_access_token

logger = structlog.get_logger()

PROTECTED_PREFIXES = ("/dashboard", "/builder", "/billing", "/settings")
SIGN_IN_PAGE = "/"
PENDING_PAGE = "/auth/pending"
TOKEN_COOKIE = "deckster_token"


def is_protected(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in PROTECTED_PREFIXES)


def _token_from(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(TOKEN_COOKIE)


async def route_gate(request: Request, call_next):
    """
    Send anonymous visitors of protected pages to the sign-in page and
    signed-in but unapproved users to the pending page.
    """
    path = request.url.path
    if not is_protected(path):
        return await call_next(request)

    token = _token_from(request)
    if token is None:
        return RedirectResponse(SIGN_IN_PAGE, status_code=307)
    try:
        principal = decode_access_token(token)
    except jwt.PyJWTError:
        return RedirectResponse(SIGN_IN_PAGE, status_code=307)

    if not principal.approved:
        logger.info("Unapproved user redirected", email=principal.email, path=path)
        return RedirectResponse(PENDING_PAGE, status_code=307)

    return await call_next(request)
