"""
Caller Identity Models

The service does not manage users; it only reads the caller's id from a
bearer token issued elsewhere.
"""

from datetime import datetime

from pydantic import Field

from daogov.models.base import DaoGovModel


class TokenPayload(DaoGovModel):
    """JWT token payload (claims)."""

    sub: str = Field(min_length=1, description="Subject (user ID)")
    exp: datetime | None = Field(default=None, description="Expiration timestamp")
    iat: datetime | None = Field(default=None, description="Issued at timestamp")
    jti: str | None = Field(default=None, description="JWT ID")
    type: str = Field(default="access", description="Token type")
