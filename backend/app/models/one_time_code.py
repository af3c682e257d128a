"""One-time login code model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class OneTimeCode(BaseModel):
    """A 6-digit login code emailed to a user.

    A code is valid while ``consumed`` is false and ``expires_at`` is in
    the future. The partial unique index keeps at most one unconsumed
    code per email, even with concurrent issuers.
    """

    __tablename__ = "one_time_codes"

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    consumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_one_time_codes_lookup", "email", "consumed", "expires_at"),
        Index(
            "uq_one_time_codes_active_email",
            "email",
            unique=True,
            postgresql_where=text("consumed = false"),
            sqlite_where=text("consumed = 0"),
        ),
    )

    def __repr__(self) -> str:
        # Never include the code itself
        return f"<OneTimeCode {self.email} consumed={self.consumed}>"
