"""User directory - account lookups used by the auth subsystem."""

import logging
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import (
    ROLE_ADMIN,
    ROLE_CITIZEN,
    STATUS_ACTIVE,
    STATUS_INACTIVE,
    User,
)
from app.services.exceptions import StorageError

logger = logging.getLogger(__name__)

# Columns a user may edit on their own account
PROFILE_FIELDS = frozenset({"first_name", "last_name", "phone", "national_id"})


class DuplicateValueError(ValueError):
    """A unique column already holds this value on another account."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} already exists. Please use a different {field}.")


@runtime_checkable
class UserDirectory(Protocol):
    """Interface the auth service needs from the account store.

    Callers normalize emails to lowercase before calling ``find_by_email``.
    """

    async def find_by_email(self, email: str) -> User | None: ...

    async def find_by_id(self, user_id: UUID | str) -> User | None: ...

    async def save(self, user: User) -> User: ...


class SQLUserDirectory:
    """UserDirectory backed by the ``users`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email(self, email: str) -> User | None:
        try:
            result = await self.session.execute(select(User).where(User.email == email))
        except SQLAlchemyError as e:
            raise StorageError("Failed to look up user") from e
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: UUID | str) -> User | None:
        if not isinstance(user_id, UUID):
            try:
                user_id = UUID(str(user_id))
            except ValueError:
                return None
        try:
            result = await self.session.execute(select(User).where(User.id == user_id))
        except SQLAlchemyError as e:
            raise StorageError("Failed to look up user") from e
        return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        self.session.add(user)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to save user") from e
        return user

    async def set_status(self, user_id: UUID | str, status: str) -> User | None:
        """Activate or deactivate an account. Returns None if it does not exist."""
        if status not in (STATUS_ACTIVE, STATUS_INACTIVE):
            raise ValueError(f"Invalid status: {status}")
        user = await self.find_by_id(user_id)
        if user is None:
            return None
        user.status = status
        await self.save(user)
        logger.info(f"User {user.email} status set to {status}")
        return user

    async def get_stats(self) -> dict[str, int]:
        """Account counts for the admin dashboard."""

        async def _count(*criteria) -> int:
            result = await self.session.execute(select(func.count(User.id)).where(*criteria))
            return result.scalar() or 0

        return {
            "total_users": await _count(),
            "active_users": await _count(User.status == STATUS_ACTIVE),
            "inactive_users": await _count(User.status == STATUS_INACTIVE),
            "admin_users": await _count(User.role == ROLE_ADMIN),
            "citizen_users": await _count(User.role == ROLE_CITIZEN),
            "verified_users": await _count(User.email_verified.is_(True)),
            "unverified_users": await _count(User.email_verified.is_(False)),
        }

    async def recent_logins(self, limit: int = 10) -> list[User]:
        result = await self.session.execute(
            select(User)
            .where(User.last_login_at.is_not(None))
            .order_by(User.last_login_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def update_profile(self, user_id: UUID | str, changes: dict[str, Any]) -> User | None:
        """Apply self-service profile changes. Returns None if the user does not exist.

        Only ``PROFILE_FIELDS`` may be changed. Raises DuplicateValueError when
        a unique value is already used by another account.
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        national_id = changes.get("national_id")
        if national_id is not None and national_id != user.national_id:
            taken = await self.session.execute(
                select(User.id).where(User.national_id == national_id, User.id != user.id)
            )
            if taken.first() is not None:
                raise DuplicateValueError("national_id")

        for name, value in changes.items():
            setattr(user, name, value)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race with another account claiming the same value
            await self.session.rollback()
            raise DuplicateValueError("national_id") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError("Failed to update profile") from e
        logger.info(f"User {user.email} updated profile fields: {', '.join(sorted(changes))}")
        return user
