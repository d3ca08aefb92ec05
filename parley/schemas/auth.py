"""Signed token claims."""

from pydantic import BaseModel, ConfigDict, Field


class TokenClaims(BaseModel):
    """Claims carried in every access token.

    Immutable once signed; a token is never refreshed in place.
    """

    model_config = ConfigDict(frozen=True)

    sub: str = Field(..., description="Username at issue time")
    user_id: int
    session_id: str
    # First 30 characters of the User-Agent seen at login
    user_agent: str = ""
    is_admin: bool = False
    iat: int
    exp: int
