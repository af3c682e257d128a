"""Passwordless authentication and session lifecycle.

A login attempt moves through: no code -> code sent -> verified -> session
active -> logged out. Each public operation returns an ``AuthResult``
instead of raising, so callers only branch on ``success`` and ``error``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import Clock, utcnow
from app.models.user import User
from app.services.email import EmailDelivery
from app.services.exceptions import (
    AccountInactiveError,
    AuthError,
    AuthErrorCode,
    EmailDeliveryError,
    InvalidRefreshTokenError,
    StorageError,
    TokenError,
    TokenRevokedError,
    UserNotFoundError,
)
from app.services.one_time_code import OneTimeCodeStore, normalize_email
from app.services.token_blacklist import TokenBlacklistStore
from app.services.tokens import TokenIssuer
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AuthResult(Generic[T]):
    """Outcome of an auth operation."""

    success: bool
    data: T | None = None
    error: AuthErrorCode | None = None
    message: str = ""

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "AuthResult[Any]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: AuthErrorCode, message: str) -> "AuthResult[Any]":
        return cls(success=False, error=error, message=message)

    @classmethod
    def from_error(cls, error: AuthError) -> "AuthResult[Any]":
        return cls.fail(error.code, error.message)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user: User
    expires_in: int


@dataclass
class RefreshedAccess:
    access_token: str
    expires_in: int


@dataclass
class PurgeReport:
    blacklist_entries: int
    one_time_codes: int


class AuthSessionService:
    """Coordinates codes, tokens, revocation and the user directory."""

    def __init__(
        self,
        codes: OneTimeCodeStore,
        tokens: TokenIssuer,
        blacklist: TokenBlacklistStore,
        users: UserDirectory,
        mailer: EmailDelivery,
        clock: Clock = utcnow,
        code_purge_grace: timedelta = timedelta(seconds=60),
    ):
        self.codes = codes
        self.tokens = tokens
        self.blacklist = blacklist
        self.users = users
        self.mailer = mailer
        self._clock = clock
        self._code_purge_grace = code_purge_grace

    @staticmethod
    def _ensure_active(user: User | None) -> User:
        if user is None:
            raise UserNotFoundError()
        if not user.is_active:
            raise AccountInactiveError()
        return user

    @staticmethod
    def _storage_failure(action: str) -> AuthResult[Any]:
        # Must be called from inside an except block
        logger.exception(f"Storage error during {action}")
        return AuthResult.fail(AuthErrorCode.STORAGE_ERROR, StorageError.default_message)

    async def send_code(self, email: str) -> AuthResult[None]:
        """Issue a one-time code and email it to an active user."""
        email = normalize_email(email)
        try:
            self._ensure_active(await self.users.find_by_email(email))
            code = await self.codes.issue(email)
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("send_code")
        except AuthError as e:
            logger.info(
                f"Login code refused for {email}: {e.code}", extra={"error_code": str(e.code)}
            )
            return AuthResult.from_error(e)

        try:
            delivered = await self.mailer.send_one_time_code_message(email, code)
        except Exception:
            logger.exception(f"Email backend raised while sending login code to {email}")
            delivered = False

        if not delivered:
            logger.warning(f"Login code for {email} could not be delivered")
            return AuthResult.fail(
                AuthErrorCode.EMAIL_DELIVERY_FAILED, EmailDeliveryError.default_message
            )

        logger.info(f"Login code issued for {email}")
        return AuthResult.ok(message="Verification code sent to your email")

    async def verify_code(self, email: str, code: str) -> AuthResult[AuthSession]:
        """Consume a one-time code and open a session."""
        email = normalize_email(email)
        try:
            await self.codes.verify(email, code)
            user = self._ensure_active(await self.users.find_by_email(email))

            user.last_login_at = self._clock()
            user.email_verified = True
            await self.users.save(user)

            session = AuthSession(
                access_token=self.tokens.issue_access_token(user),
                refresh_token=self.tokens.issue_refresh_token(user),
                user=user,
                expires_in=self.tokens.access_token_expires_in,
            )
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("verify_code")
        except AuthError as e:
            logger.info(
                f"Login failed for {email}: {e.code}", extra={"error_code": str(e.code)}
            )
            return AuthResult.from_error(e)

        logger.info(f"User {email} logged in")
        return AuthResult.ok(session, message="Login successful")

    async def refresh(self, refresh_token: str) -> AuthResult[RefreshedAccess]:
        """Mint a new access token. The refresh token itself is not rotated."""
        try:
            payload = self.tokens.verify_refresh_token(refresh_token)
        except TokenError:
            return AuthResult.from_error(InvalidRefreshTokenError())

        try:
            if await self.blacklist.is_revoked(refresh_token):
                raise TokenRevokedError()
            user = self._ensure_active(await self.users.find_by_id(payload["sub"]))
            refreshed = RefreshedAccess(
                access_token=self.tokens.issue_access_token(user),
                expires_in=self.tokens.access_token_expires_in,
            )
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("refresh")
        except AuthError as e:
            return AuthResult.from_error(e)

        return AuthResult.ok(refreshed, message="Token refreshed successfully")

    async def logout(self, access_token: str, refresh_token: str | None = None) -> AuthResult[None]:
        """Revoke the access token, and the caller's refresh token if given.

        The access token is revoked first and stays revoked whatever happens
        to the refresh token. A refresh token that does not verify, or that
        belongs to someone else, is left alone. Revoking an already revoked
        token is not an error.
        """
        now = self._clock()
        try:
            payload = TokenIssuer.decode_unverified(access_token)
            await self.blacklist.revoke(
                access_token,
                TokenIssuer.expiry_of(payload, ceiling=now + self.tokens.access_ttl),
            )
            if refresh_token:
                await self._revoke_refresh_token(refresh_token, str(payload.get("sub")), now)
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("logout")
        except AuthError as e:
            return AuthResult.from_error(e)

        logger.info(f"User {payload.get('email') or payload.get('sub')} logged out")
        return AuthResult.ok(message="Logout successful")

    async def _revoke_refresh_token(self, refresh_token: str, subject: str, now: datetime) -> bool:
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except TokenError as e:
            logger.warning(
                f"Refresh token not revoked on logout of {subject}: {e.message}",
                extra={"error_code": str(e.code)},
            )
            return False
        if claims["sub"] != subject:
            logger.warning(f"Refresh token presented on logout of {subject} belongs to another user")
            return False
        return await self.blacklist.revoke(
            refresh_token,
            TokenIssuer.expiry_of(claims, ceiling=now + self.tokens.refresh_ttl),
        )

    async def authenticate_request(self, bearer_token: str) -> AuthResult[User]:
        """Resolve a bearer access token to an active user."""
        try:
            if await self.blacklist.is_revoked(bearer_token):
                raise TokenRevokedError()
            payload = self.tokens.verify_access_token(bearer_token)
            user = self._ensure_active(await self.users.find_by_id(payload["sub"]))
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("authenticate_request")
        except AuthError as e:
            return AuthResult.from_error(e)
        return AuthResult.ok(user)

    async def get_user_from_token(self, token: str) -> User | None:
        """Best-effort lookup of the token's user. Returns None on any failure."""
        try:
            payload = self.tokens.verify_access_token(token)
            return await self.users.find_by_id(payload["sub"])
        except (AuthError, SQLAlchemyError):
            return None

    async def purge_expired(self) -> AuthResult[PurgeReport]:
        """Delete expired blacklist entries and expired one-time codes."""
        try:
            report = PurgeReport(
                blacklist_entries=await self.blacklist.purge_expired(),
                one_time_codes=await self.codes.purge_expired(grace=self._code_purge_grace),
            )
        except (StorageError, SQLAlchemyError):
            return self._storage_failure("purge_expired")

        if report.one_time_codes:
            logger.info(f"Purged {report.one_time_codes} expired one-time codes")
        return AuthResult.ok(report, message="Expired tokens cleaned successfully")
