"""Database-backed token revocation list.

A token stays listed only until its own expiry; after that it would fail
verification anyway, so the entry is dead weight and gets purged.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.models.token_blacklist import TokenBlacklist
from app.services.exceptions import StorageError

logger = logging.getLogger(__name__)


class TokenBlacklistStore:
    """Records revoked tokens until they expire."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self._clock = clock

    async def revoke(self, token: str, expires_at: datetime) -> bool:
        """Add a token to the blacklist.

        Returns True if a new entry was written, False if the token was
        already listed. Both count as success.
        """
        try:
            await self.session.execute(
                insert(TokenBlacklist).values(
                    token=token, expires_at=expires_at, created_at=self._clock()
                )
            )
            await self.session.commit()
        except IntegrityError:
            # Unique key on token: already revoked (possibly by a concurrent logout)
            await self.session.rollback()
            return False
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to revoke token") from e
        return True

    async def is_revoked(self, token: str) -> bool:
        """True if the token is listed and the entry has not yet expired."""
        try:
            result = await self.session.execute(
                select(TokenBlacklist.token).where(
                    TokenBlacklist.token == token,
                    TokenBlacklist.expires_at > self._clock(),
                )
            )
        except SQLAlchemyError as e:
            raise StorageError("Failed to check token revocation") from e
        return result.scalar_one_or_none() is not None

    async def count_active(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(TokenBlacklist).where(
                TokenBlacklist.expires_at > self._clock()
            )
        )
        return result.scalar() or 0

    async def purge_expired(self) -> int:
        """Remove expired entries from the blacklist. Returns count removed."""
        try:
            result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
                delete(TokenBlacklist).where(TokenBlacklist.expires_at <= self._clock())
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to purge token blacklist") from e
        if result.rowcount:
            logger.info(f"Purged {result.rowcount} expired token blacklist entries")
        return result.rowcount
