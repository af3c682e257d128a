"""Authentication API endpoints.

Thin adapter over ``AuthSessionService``: requests are validated here,
service results are mapped to HTTP status codes and wrapped in the
``{success, data, message}`` envelope.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import get_db, settings
from app.core.request_utils import extract_bearer_token
from app.middleware.rate_limit import RateLimiter, get_rate_limiter
from app.models.user import ROLE_ADMIN, User
from app.schemas.auth import (
    ApiResponse,
    AuthStats,
    CleanupData,
    LoginData,
    LogoutRequest,
    RecentLogin,
    RefreshData,
    RefreshRequest,
    SendCodeRequest,
    TokenValidation,
    UpdateProfileRequest,
    UpdateUserStatusRequest,
    UserResponse,
    VerifyCodeRequest,
)
from app.services.auth import AuthResult, AuthSessionService
from app.services.email import EmailDelivery
from app.services.exceptions import AuthErrorCode
from app.services.one_time_code import OneTimeCodeStore, normalize_email
from app.services.permissions import can_access, has_role
from app.services.token_blacklist import TokenBlacklistStore
from app.services.tokens import TokenIssuer
from app.services.user_directory import DuplicateValueError, SQLUserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}

# Status codes for failures on routes that identify the user by email.
# Every other route reports identity problems as 401.
_LOOKUP_STATUS: dict[AuthErrorCode, int] = {
    AuthErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.ACCOUNT_INACTIVE: status.HTTP_403_FORBIDDEN,
}

_SERVER_STATUS: dict[AuthErrorCode, int] = {
    AuthErrorCode.EMAIL_DELIVERY_FAILED: status.HTTP_502_BAD_GATEWAY,
    AuthErrorCode.STORAGE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.CONFIGURATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_response(success: bool, data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Build the standard response envelope."""
    return {"success": success, "data": data, "message": message}


def raise_for_result(result: AuthResult[Any], *, lookup_by_email: bool = False) -> NoReturn:
    """Turn a failed service result into an HTTPException."""
    error = result.error
    if error in _SERVER_STATUS:
        code = _SERVER_STATUS[error]
    elif lookup_by_email and error in _LOOKUP_STATUS:
        code = _LOOKUP_STATUS[error]
    else:
        code = status.HTTP_401_UNAUTHORIZED
    headers = _UNAUTHORIZED_HEADERS if code == status.HTTP_401_UNAUTHORIZED else None
    raise HTTPException(status_code=code, detail=result.message, headers=headers)


# --- Dependencies ---


def get_token_issuer(request: Request) -> TokenIssuer:
    """The issuer built at app creation."""
    return request.app.state.token_issuer


def get_mailer(request: Request) -> EmailDelivery:
    return request.app.state.email_delivery


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
    mailer: EmailDelivery = Depends(get_mailer),
) -> AuthSessionService:
    """Dependency to get auth service bound to the request's session."""
    return AuthSessionService(
        codes=OneTimeCodeStore(db),
        tokens=tokens,
        blacklist=TokenBlacklistStore(db),
        users=SQLUserDirectory(db),
        mailer=mailer,
        code_purge_grace=timedelta(seconds=settings.one_time_code_purge_grace_seconds),
    )


def get_bearer_token(request: Request) -> str:
    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token is required",
            headers=_UNAUTHORIZED_HEADERS,
        )
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> User:
    """Dependency to get the current authenticated user from the Bearer token."""
    result = await auth_service.authenticate_request(token)
    if not result.success:
        raise_for_result(result)
    return result.data


async def get_optional_user(
    request: Request,
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> User | None:
    """Like ``get_current_user`` but yields None instead of rejecting."""
    token = extract_bearer_token(request)
    if token is None:
        return None
    result = await auth_service.authenticate_request(token)
    return result.data if result.success else None


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not has_role(current_user, ROLE_ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def require_permission(resource: str, action: str = "read") -> Callable[..., Awaitable[User]]:
    """Build a dependency that rejects users who may not ``action`` on ``resource``."""

    async def _check(current_user: User = Depends(get_current_user)) -> User:
        if not can_access(current_user, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions to {action} {resource}",
            )
        return current_user

    return _check


# --- Public endpoints ---


@router.post("/send-code", response_model=ApiResponse[None])
async def send_code(
    payload: SendCodeRequest,
    request: Request,
    auth_service: AuthSessionService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> dict[str, Any]:
    """Email a one-time login code.

    404 if no account uses the address, 403 if the account is inactive,
    429 if the address already had three codes in five minutes,
    502 if the email could not be sent.
    """
    # The middleware limits per client IP; this bucket limits per address
    email = normalize_email(payload.email)
    allowed, headers, _ = await rate_limiter.check_rate_limit(f"email:{email}", request.url.path)
    if not allowed:
        logger.warning(f"Code request limit reached for {email}", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=rate_limiter.get_config_for_path(request.url.path).message,
            headers=headers,
        )

    result = await auth_service.send_code(email)
    if not result.success:
        raise_for_result(result, lookup_by_email=True)
    return create_response(True, None, result.message)


@router.post("/verify-code", response_model=ApiResponse[LoginData])
async def verify_code(
    payload: VerifyCodeRequest,
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Exchange a one-time code for access and refresh tokens."""
    result = await auth_service.verify_code(payload.email, payload.code)
    if not result.success:
        raise_for_result(result)
    session = result.data
    data = LoginData(
        token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        user=UserResponse.model_validate(session.user),
    )
    return create_response(True, data, result.message)


@router.post("/refresh-token", response_model=ApiResponse[RefreshData])
async def refresh_token(
    payload: RefreshRequest,
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Issue a new access token. The refresh token stays valid until it expires."""
    result = await auth_service.refresh(payload.refresh_token)
    if not result.success:
        raise_for_result(result)
    refreshed = result.data
    data = RefreshData(token=refreshed.access_token, expires_in=refreshed.expires_in)
    return create_response(True, data, result.message)


# --- Authenticated endpoints ---


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    payload: LogoutRequest | None = Body(default=None),
    token: str = Depends(get_bearer_token),
    current_user: User = Depends(get_current_user),
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Revoke the current access token (and a refresh token, if supplied)."""
    result = await auth_service.logout(token, payload.refresh_token if payload else None)
    if not result.success:
        raise_for_result(result)
    return create_response(True, None, result.message)


@router.get("/me", response_model=ApiResponse[dict[str, UserResponse]])
async def get_me(
    current_user: User = Depends(require_permission("profile", "read")),
) -> dict[str, Any]:
    """Get the current user's profile."""
    return create_response(
        True,
        {"user": UserResponse.model_validate(current_user)},
        "User profile retrieved successfully",
    )


@router.get("/validate-token", response_model=ApiResponse[TokenValidation])
async def validate_token(current_user: User = Depends(get_current_user)) -> dict[str, Any]:
    data = TokenValidation(
        valid=True,
        user={
            "id": str(current_user.id),
            "email": current_user.email,
            "role": current_user.role,
            "status": current_user.status,
        },
    )
    return create_response(True, data, "Token is valid")


@router.put("/profile", response_model=ApiResponse[dict[str, UserResponse]])
async def update_profile(
    payload: UpdateProfileRequest,
    current_user: User = Depends(require_permission("profile", "update")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Update the caller's own name, phone or national ID.

    409 if the national ID belongs to another account.
    """
    try:
        user = await SQLUserDirectory(db).update_profile(
            current_user.id, payload.model_dump(exclude_unset=True, exclude_none=True)
        )
    except DuplicateValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return create_response(
        True,
        {"user": UserResponse.model_validate(user)},
        "Profile updated successfully",
    )


# --- Admin endpoints ---


@router.put("/users/{user_id}/status", response_model=ApiResponse[dict[str, UserResponse]])
async def change_user_status(
    user_id: UUID,
    payload: UpdateUserStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Activate or deactivate an account. Existing tokens of a deactivated
    user stop working on their next request."""
    user = await SQLUserDirectory(db).set_status(user_id, payload.status)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    logger.info(f"Admin {admin.email} set status of {user.email} to {payload.status}")
    return create_response(
        True,
        {"user": UserResponse.model_validate(user)},
        f"User status updated to {payload.status}",
    )


@router.get("/stats", response_model=ApiResponse[dict[str, AuthStats]])
async def get_auth_stats(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    directory = SQLUserDirectory(db)
    counts = await directory.get_stats()
    recent = await directory.recent_logins(limit=10)
    stats = AuthStats(
        **counts,
        revoked_tokens=await TokenBlacklistStore(db).count_active(),
        recent_logins=[RecentLogin.model_validate(u) for u in recent],
    )
    return create_response(
        True, {"stats": stats}, "Authentication statistics retrieved successfully"
    )


@router.post("/clean-expired-tokens", response_model=ApiResponse[CleanupData])
async def clean_expired_tokens(
    _admin: User = Depends(require_admin),
    auth_service: AuthSessionService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Run the expiry sweep now instead of waiting for the background task."""
    result = await auth_service.purge_expired()
    if not result.success:
        raise_for_result(result)
    report = result.data
    data = CleanupData(
        blacklist_entries=report.blacklist_entries,
        one_time_codes=report.one_time_codes,
    )
    return create_response(True, data, result.message)
