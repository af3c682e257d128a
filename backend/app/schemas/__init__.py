# Rugalika Pydantic Schemas
from app.schemas.auth import (
    ApiResponse,
    LoginData,
    LogoutRequest,
    RefreshData,
    RefreshRequest,
    SendCodeRequest,
    UpdateProfileRequest,
    UpdateUserStatusRequest,
    UserResponse,
    VerifyCodeRequest,
)

__all__ = [
    "ApiResponse",
    "LoginData",
    "LogoutRequest",
    "RefreshData",
    "RefreshRequest",
    "SendCodeRequest",
    "UpdateProfileRequest",
    "UpdateUserStatusRequest",
    "UserResponse",
    "VerifyCodeRequest",
]
