"""Create the initial administrator account.

Run with ``python -m app.seeds`` from the ``backend`` directory.
"""

import asyncio

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import async_session_maker, settings, setup_logging
from app.core.config import Settings
from app.core.logging import get_logger
from app.models.user import ROLE_ADMIN, STATUS_ACTIVE, User

logger = get_logger("seeds")


async def seed_admin(session: AsyncSession, settings: Settings) -> User | None:
    """Create the configured admin unless an admin already exists.

    Returns the created user, or None when nothing was created.
    """
    result = await session.execute(select(User).where(User.role == ROLE_ADMIN).limit(1))
    if result.scalar_one_or_none() is not None:
        logger.info("Admin user already exists, skipping seed")
        return None

    admin = User(
        first_name=settings.admin_first_name,
        last_name=settings.admin_last_name,
        email=settings.admin_email,
        phone=settings.admin_phone,
        national_id=settings.admin_national_id,
        role=ROLE_ADMIN,
        status=STATUS_ACTIVE,
        email_verified=True,
    )
    session.add(admin)
    try:
        await session.commit()
    except IntegrityError:
        # Email or national id already belongs to a non-admin account
        await session.rollback()
        logger.warning(f"Cannot seed admin: {settings.admin_email} or its national ID is taken")
        return None

    logger.info(f"Admin user created: {admin.email} (sign in with a one-time code)")
    return admin


async def main() -> None:
    setup_logging(settings.log_level)
    async with async_session_maker() as session:
        await seed_admin(session, settings)


if __name__ == "__main__":
    asyncio.run(main())
