"""Sign-in Pydantic schemas."""

from deckster.schemas.common import CamelModel


class GoogleSignInRequest(CamelModel):
    id_token: str


class SignInResponse(CamelModel):
    """Where the front end should send the user, plus their API token."""

    redirect: str
    access_token: str | None = None
    token_type: str = "bearer"
