"""Portal user account."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel

ROLE_ADMIN = "admin"
ROLE_CITIZEN = "citizen"

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"

UserRole = Enum(ROLE_ADMIN, ROLE_CITIZEN, name="user_role", create_constraint=True)
UserStatus = Enum(STATUS_ACTIVE, STATUS_INACTIVE, name="user_status", create_constraint=True)


class User(BaseModel):
    """Citizen or administrator account.

    Authentication is passwordless: users sign in with a one-time code
    sent to ``email``.
    """

    __tablename__ = "users"

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    national_id: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    role: Mapped[str] = mapped_column(UserRole, nullable=False, default=ROLE_CITIZEN)
    status: Mapped[str] = mapped_column(UserStatus, nullable=False, default=STATUS_ACTIVE)

    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_users_role_status", "role", "status"),)

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
