"""Revoked tokens - survives process restarts and is shared by all workers."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, _utcnow


class TokenBlacklist(Base):
    """A revoked JWT identified by its raw token string.

    Entries are created on logout and purged once ``expires_at`` (the
    token's own ``exp`` claim) has passed.
    """

    __tablename__ = "token_blacklist"

    token: Mapped[str] = mapped_column(String(2048), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<TokenBlacklist {self.token[:16]}... expires={self.expires_at}>"
