"""One-time login codes.

Codes are 6 digits, live for five minutes and can be consumed once.
Verification is a single conditional UPDATE so that two workers racing
on the same code cannot both succeed.
"""

import logging
import secrets
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.models.one_time_code import OneTimeCode
from app.services.exceptions import InvalidOrExpiredCodeError, StorageError

logger = logging.getLogger(__name__)

ONE_TIME_CODE_TTL = timedelta(minutes=5)
CODE_MIN = 100000
CODE_MAX = 999999


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_code() -> str:
    """Uniform 6-digit code in [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class OneTimeCodeStore:
    """Issues, verifies and purges one-time codes."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self._clock = clock

    async def issue(self, email: str) -> str:
        """Replace any unconsumed code for ``email`` with a fresh one.

        Returns the code so the caller can deliver it out of band.
        """
        email = normalize_email(email)
        try:
            try:
                return await self._replace_code(email)
            except IntegrityError:
                # Another worker inserted a code between our delete and insert
                await self.session.rollback()
                return await self._replace_code(email)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to store one-time code") from e

    async def _replace_code(self, email: str) -> str:
        await self.session.execute(
            delete(OneTimeCode).where(
                OneTimeCode.email == email,
                OneTimeCode.consumed.is_(False),
            )
        )
        code = generate_code()
        now = self._clock()
        self.session.add(
            OneTimeCode(
                email=email,
                code=code,
                created_at=now,
                updated_at=now,
                expires_at=now + ONE_TIME_CODE_TTL,
                consumed=False,
            )
        )
        await self.session.commit()
        return code

    async def verify(self, email: str, candidate: str) -> None:
        """Consume the code if it is correct, unconsumed and unexpired.

        Raises InvalidOrExpiredCodeError for every kind of mismatch.
        """
        email = normalize_email(email)
        now = self._clock()
        try:
            result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
                update(OneTimeCode)
                .where(
                    OneTimeCode.email == email,
                    OneTimeCode.code == candidate,
                    OneTimeCode.consumed.is_(False),
                    OneTimeCode.expires_at > now,
                )
                .values(consumed=True, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to verify one-time code") from e

        if result.rowcount != 1:
            raise InvalidOrExpiredCodeError()

    async def count_active(self, email: str) -> int:
        """Number of unconsumed, unexpired codes for ``email``."""
        result = await self.session.execute(
            select(func.count(OneTimeCode.id)).where(
                OneTimeCode.email == normalize_email(email),
                OneTimeCode.consumed.is_(False),
                OneTimeCode.expires_at > self._clock(),
            )
        )
        return result.scalar() or 0

    async def has_active_code(self, email: str) -> bool:
        return await self.count_active(email) > 0

    async def purge_expired(self, grace: timedelta = timedelta(0)) -> int:
        """Delete codes that expired more than ``grace`` ago. Returns count removed."""
        cutoff = self._clock() - grace
        try:
            result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
                delete(OneTimeCode).where(OneTimeCode.expires_at <= cutoff)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to purge expired one-time codes") from e
        return result.rowcount
