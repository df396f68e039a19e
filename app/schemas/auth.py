"""Request/response schemas for auth endpoints and the access-token claims."""

import uuid

from pydantic import BaseModel, ConfigDict, Field

from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class LoginRequest(BaseModel):
    """Credentials for login. username may also be the account email."""

    username: str = Field(..., min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class RegisterRequest(BaseModel):
    """New account details."""

    username: str = Field(..., min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class RefreshRequest(BaseModel):
    """String form of an opaque refresh token."""

    refresh_token: str = Field(..., min_length=1, max_length=256)


class TokenResponse(BaseModel):
    """Access/refresh token pair returned by login and refresh."""

    access_token: str = Field(..., description="Signed JWT access token")
    refresh_token: str = Field(..., description="Opaque single-use refresh token")
    expires_in: int = Field(default=3600, description="Access token lifetime in seconds")


class MessageResponse(BaseModel):
    message: str


class AccessClaims(BaseModel):
    """
    Identity and permission snapshot embedded in a signed access token.

    Rebuilt from the database at every login/refresh and trusted as-is for the
    token's lifetime; role changes take effect on the next issuance.
    """

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    username: str
    roles: list[str] = Field(default_factory=list)
    is_admin: bool = False
    permissions: dict[str, list[str]] = Field(default_factory=dict)
    iat: int
    exp: int
    sub: str

    def has_permission(self, resource: str, action: str) -> bool:
        return action in self.permissions.get(resource, ())
