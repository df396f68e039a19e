"""Auth routes (register, login, refresh) and the access-control dependencies used by every router."""

import logging
from collections.abc import Callable
from typing import Annotated

import jwt
from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import AuthenticationError, AuthorizationError, RateLimitedError
from app.core.security import decode_access_token
from app.schemas.auth import (
    AccessClaims,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from app.services.auth import AuthService
from app.services.cache import CacheService
from app.services.rate_limit import RateLimiter
from app.services.tasks import TaskService
from app.services.users import UserService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_cache_service(request: Request) -> CacheService:
    return request.app.state.cache_service


def enforce_auth_rate_limit(request: Request) -> None:
    """Dependency: per-IP budget for /auth endpoints, stricter than the global one."""
    limiter: RateLimiter = request.app.state.auth_limiter
    if not limiter.allow(client_ip(request)):
        raise RateLimitedError("Rate limit exceeded")


def get_current_claims(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AccessClaims:
    """
    Dependency: require a valid Bearer access token and return its claims.

    The claims are trusted as signed; storage is never consulted. Also stored on
    request.state.claims for middleware and handlers.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials, request.app.state.settings)
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid or expired token")
    try:
        claims = AccessClaims.model_validate(payload)
    except SchemaValidationError:
        raise AuthenticationError("Invalid token payload")
    request.state.claims = claims
    return claims


CurrentClaims = Annotated[AccessClaims, Depends(get_current_claims)]


def require_permission(resource: str, action: str) -> Callable[[AccessClaims], AccessClaims]:
    """Build a dependency that raises 403 unless the token grants resource:action."""

    def check_permission(claims: CurrentClaims) -> AccessClaims:
        if not claims.has_permission(resource, action):
            raise AuthorizationError("Insufficient permissions")
        return claims

    return check_permission


def require_admin(claims: CurrentClaims) -> AccessClaims:
    """Dependency: require an admin token. Raises 403 for non-admin."""
    if not claims.is_admin:
        raise AuthorizationError("Admin access required")
    return claims


router = APIRouter(dependencies=[Depends(enforce_auth_rate_limit)])


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Create an account with the default 'user' role."""
    auth.register(db, body.username, body.email, body.password)
    return MessageResponse(message="user created successfully")


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    """
    Authenticate with username (or email) and password; returns an access/refresh token pair.
    Include the access token in the Authorization header as: Bearer <access_token>
    """
    pair = auth.login(db, body.username, body.password)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    body: RefreshRequest,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    """Exchange a refresh token for a new pair. Each refresh token works once."""
    pair = auth.refresh(db, body.refresh_token)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )
