"""Application error taxonomy. Every error maps to one HTTP status at the API boundary."""


class AppError(Exception):
    """Base class for errors that the API layer renders as {"detail": message}."""

    status_code: int = 500
    public_message: str | None = None

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)

    @property
    def client_message(self) -> str:
        """Message safe to return to the client. Server faults never leak internal detail."""
        return self.public_message or self.message


class ValidationError(AppError):
    """Malformed client input."""

    status_code = 400


class MalformedTokenError(ValidationError):
    """Refresh token value is not structurally valid; rejected before any lookup."""


class AuthenticationError(AppError):
    """Bad credentials or an invalid, expired or malformed access token."""

    status_code = 401


class RefreshTokenInvalidError(AuthenticationError):
    """Refresh token not found, expired, or already consumed."""


class AuthorizationError(AppError):
    """Authenticated caller lacks the rights for the operation."""

    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """Username or email already taken."""

    status_code = 409


class PersistenceError(AppError):
    """Storage write or transaction failure."""

    status_code = 500
    public_message = "Internal server error"


class StorageLookupError(PersistenceError):
    """Storage read failure while resolving users, roles or permissions."""


class HashingError(AppError):
    status_code = 500
    public_message = "Internal server error"


class SigningError(AppError):
    """Signing key unavailable or token encoding failed."""

    status_code = 500
    public_message = "Internal server error"


class RateLimitedError(AppError):
    """Client exceeded its request budget."""

    status_code = 429
