"""Authentication error taxonomy.

Every error carries an ``AuthErrorCode`` so the session service can turn
it into a failure envelope and the HTTP layer can map it to a status.
"""

from enum import StrEnum
from typing import Any


class AuthErrorCode(StrEnum):
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    INVALID_OR_EXPIRED_CODE = "INVALID_OR_EXPIRED_CODE"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class AuthError(Exception):
    """Base authentication error."""

    code: AuthErrorCode = AuthErrorCode.INVALID_TOKEN
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class UserNotFoundError(AuthError):
    """No account exists for the given email or id."""

    code = AuthErrorCode.USER_NOT_FOUND
    default_message = "No account found with this email address"


class AccountInactiveError(AuthError):
    """Account exists but has been deactivated."""

    code = AuthErrorCode.ACCOUNT_INACTIVE
    default_message = "Account is inactive. Please contact administrator."


class InvalidOrExpiredCodeError(AuthError):
    """Wrong, expired, already used or never issued one-time code.

    These cases are deliberately indistinguishable.
    """

    code = AuthErrorCode.INVALID_OR_EXPIRED_CODE
    default_message = "Invalid or expired code"


class TokenError(AuthError):
    """JWT token error."""

    pass


class InvalidTokenError(TokenError):
    """JWT token is malformed, badly signed or of the wrong kind."""

    code = AuthErrorCode.INVALID_TOKEN
    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    """JWT token has expired."""

    code = AuthErrorCode.TOKEN_EXPIRED
    default_message = "Token has expired"


class InvalidRefreshTokenError(TokenError):
    """Refresh token failed verification (signature, kind or expiry)."""

    code = AuthErrorCode.INVALID_REFRESH_TOKEN
    default_message = "Invalid or expired refresh token"


class TokenRevokedError(TokenError):
    """Token was revoked by logout."""

    code = AuthErrorCode.TOKEN_REVOKED
    default_message = "Token has been revoked"


class EmailDeliveryError(AuthError):
    """The one-time code could not be delivered."""

    code = AuthErrorCode.EMAIL_DELIVERY_FAILED
    default_message = "Failed to send the verification code. Please try again later."


class StorageError(AuthError):
    """The backing store is unreachable or rejected the operation."""

    code = AuthErrorCode.STORAGE_ERROR
    default_message = "Internal server error"


class ConfigurationError(AuthError):
    """Fatal misconfiguration detected at startup (e.g. missing secrets)."""

    code = AuthErrorCode.CONFIGURATION_ERROR
    default_message = "Authentication is not configured"
