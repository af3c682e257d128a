"""Pydantic schemas for authentication API."""

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool
    data: T | None = None
    message: str | None = None


class SendCodeRequest(BaseModel):
    """Request a one-time login code."""

    email: EmailStr


class VerifyCodeRequest(BaseModel):
    """Exchange a one-time code for tokens."""

    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$", description="6-digit code from the email")


# Width of token_blacklist.token
MAX_TOKEN_LENGTH = 2048


class RefreshRequest(BaseModel):
    """Request for token refresh."""

    refresh_token: str = Field(..., min_length=1, max_length=MAX_TOKEN_LENGTH)


class LogoutRequest(BaseModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        max_length=MAX_TOKEN_LENGTH,
        description="Refresh token to revoke alongside the access token.",
    )


class UpdateUserStatusRequest(BaseModel):
    status: Literal["active", "inactive"]


class UpdateProfileRequest(BaseModel):
    """Fields a user may change on their own account.

    Role, status, email and verification state are not accepted here.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    first_name: str | None = Field(None, min_length=1, max_length=50)
    last_name: str | None = Field(None, min_length=1, max_length=50)
    phone: str | None = Field(
        None,
        pattern=r"^(\+250|250)?[0-9]{9}$",
        description="Rwandan phone number",
    )
    national_id: str | None = Field(None, pattern=r"^[0-9]{16}$", description="16 digits")


class UserResponse(BaseModel):
    """Response with user information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    national_id: str
    role: str
    status: str
    email_verified: bool
    last_login_at: datetime | None
    created_at: datetime


class LoginData(BaseModel):
    """Payload returned by a successful code verification."""

    token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    user: UserResponse


class RefreshData(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int


class TokenValidation(BaseModel):
    valid: bool
    user: dict[str, Any]


class RecentLogin(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    first_name: str
    last_name: str
    email: str
    last_login_at: datetime | None


class AuthStats(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    citizen_users: int
    verified_users: int
    unverified_users: int
    revoked_tokens: int
    recent_logins: list[RecentLogin]


class CleanupData(BaseModel):
    blacklist_entries: int
    one_time_codes: int
