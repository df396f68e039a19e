"""Password hashing, JWT signing/verification and refresh-token generation."""

import base64
import hashlib
import re
import secrets
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

from app.core.config import settings as default_settings
from app.core.errors import HashingError, SigningError

if TYPE_CHECKING:
    from app.core.config import Settings

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

# Min/max lengths for username and password validation.
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128

# secrets.token_urlsafe(32): 32 random bytes -> 43 URL-safe base64 characters.
REFRESH_TOKEN_BYTES = 32
_REFRESH_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]{43}")

REQUIRED_CLAIMS = ["exp", "iat", "sub", "iss"]


def _prehash(plain_password: str) -> bytes:
    """
    SHA-256 digest, base64-encoded (44 bytes), so every byte of the password reaches
    bcrypt, which otherwise ignores input past 72 bytes.
    """
    return base64.b64encode(hashlib.sha256(plain_password.encode("utf-8")).digest())


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    try:
        return bcrypt.hashpw(_prehash(plain_password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")
    except (ValueError, TypeError) as e:
        raise HashingError("Password hashing failed", cause=e) from e


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    try:
        return bcrypt.checkpw(_prehash(plain_password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash checked when a login names an unknown user, so both paths cost one bcrypt run."""
    return hash_password("taskify-timing-equalizer")


def encode_access_token(
    payload: dict[str, Any],
    settings: "Settings" = default_settings,
) -> str:
    """Sign claims as a compact HS256 JWT. Raises SigningError if the key is unusable."""
    secret = settings.JWT_SECRET.get_secret_value()
    if not secret:
        raise SigningError("JWT signing key is not configured")
    try:
        return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)
    except (jwt.PyJWTError, TypeError, ValueError) as e:
        raise SigningError("Failed to sign access token", cause=e) from e


def decode_access_token(
    token: str,
    settings: "Settings" = default_settings,
) -> dict[str, Any]:
    """
    Decode and validate a JWT; return its payload.
    Raises jwt.PyJWTError on bad signature, expiry, wrong issuer or missing claims.
    """
    secret = settings.JWT_SECRET.get_secret_value()
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.JWT_ALGORITHM],
        issuer=settings.JWT_ISSUER,
        options={"require": REQUIRED_CLAIMS},
    )


def generate_refresh_token() -> str:
    """Return a new opaque refresh token value (256 bits of entropy)."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


def is_well_formed_refresh_token(value: str) -> bool:
    return bool(_REFRESH_TOKEN_RE.fullmatch(value))
