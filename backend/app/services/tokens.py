"""JWT issuance and verification.

Access and password-reset tokens are signed with ``JWT_SECRET_KEY``;
refresh tokens with ``JWT_REFRESH_SECRET_KEY``. Expiry is checked against
the injected clock rather than PyJWT's wall clock so that every time
comparison in the auth subsystem uses the same source.
"""

import math
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import jwt
from jwt.exceptions import PyJWTError

from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.services.exceptions import ConfigurationError, InvalidTokenError, TokenExpiredError


TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPE_PASSWORD_RESET = "password_reset"

PASSWORD_RESET_TTL = timedelta(hours=1)

_REQUIRED_CLAIMS = ["sub", "type", "iat", "exp"]

# Latest instant datetime can represent on every platform
_MAX_TIMESTAMP = datetime(9999, 12, 31, tzinfo=UTC).timestamp()


class TokenSubject(Protocol):
    """Anything with the identity fields we put into claims."""

    id: Any
    email: str
    role: str


class TokenIssuer:
    """Mints and validates access, refresh and password-reset tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(hours=24),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Clock = utcnow,
    ):
        if not access_secret or not refresh_secret:
            raise ConfigurationError(
                "JWT_SECRET_KEY and JWT_REFRESH_SECRET_KEY must both be set"
            )
        if access_secret == refresh_secret:
            raise ConfigurationError(
                "JWT_SECRET_KEY and JWT_REFRESH_SECRET_KEY must be different"
            )
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "TokenIssuer":
        return cls(
            access_secret=settings.jwt_secret_key,
            refresh_secret=settings.jwt_refresh_secret_key,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
            clock=clock,
        )

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.access_ttl.total_seconds())

    # --- Issuance ---

    def _encode(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {**claims, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access_token(self, user: TokenSubject) -> str:
        """Create an access token carrying identity and role."""
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role,
                "type": TOKEN_TYPE_ACCESS,
            },
            self._access_secret,
            self.access_ttl,
        )

    def issue_refresh_token(self, user: TokenSubject) -> str:
        """Create a long-lived refresh token (signed with the refresh secret)."""
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role,
                "type": TOKEN_TYPE_REFRESH,
            },
            self._refresh_secret,
            self.refresh_ttl,
        )

    def issue_password_reset_token(self, user: TokenSubject) -> str:
        """Create a one-hour password reset token."""
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "type": TOKEN_TYPE_PASSWORD_RESET,
            },
            self._access_secret,
            PASSWORD_RESET_TTL,
        )

    # --- Verification ---

    def _verify(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": _REQUIRED_CLAIMS,
                },
            )
        except PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        if not _is_timestamp(payload["exp"]):
            raise InvalidTokenError("Invalid token: malformed expiry claim")
        if payload["exp"] <= self._clock().timestamp():
            raise TokenExpiredError()
        if payload.get("type") != expected_type:
            raise InvalidTokenError(f"Wrong token type: expected {expected_type}")
        return payload

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """Validate an access token and return its claims."""
        return self._verify(token, self._access_secret, TOKEN_TYPE_ACCESS)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        """Validate a refresh token and return its claims."""
        return self._verify(token, self._refresh_secret, TOKEN_TYPE_REFRESH)

    def verify_password_reset_token(self, token: str) -> dict[str, Any]:
        """Validate a password reset token.

        Shares the access secret, so the ``type`` check is what stops an
        access token from being accepted here.
        """
        return self._verify(token, self._access_secret, TOKEN_TYPE_PASSWORD_RESET)

    @staticmethod
    def decode_unverified(token: str) -> dict[str, Any]:
        """Decode claims WITHOUT checking signature or expiry.

        Only for revocation, where a token must be blacklistable even if it
        can no longer be verified. Never use the result for authorization.
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e
        if not _is_timestamp(payload.get("exp")):
            raise InvalidTokenError("Token has no expiry claim")
        return payload

    @staticmethod
    def expiry_of(payload: dict[str, Any], ceiling: datetime | None = None) -> datetime:
        """The ``exp`` claim as an aware UTC datetime, never later than ``ceiling``.

        The claim is clamped as a number before conversion, so out-of-range
        values from unverified tokens cannot overflow.
        """
        limit = ceiling.timestamp() if ceiling is not None else _MAX_TIMESTAMP
        exp = min(max(payload["exp"], 0), limit, _MAX_TIMESTAMP)
        return datetime.fromtimestamp(float(exp), tz=UTC)


def _is_timestamp(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        # JSON integers are unbounded; keep them comparable without overflow
        return abs(value) < 2**63
    return isinstance(value, float) and math.isfinite(value)
