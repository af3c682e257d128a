# Rugalika Services
from app.services.auth import (
    AuthResult,
    AuthSession,
    AuthSessionService,
    PurgeReport,
    RefreshedAccess,
)
from app.services.email import (
    ConsoleEmailDelivery,
    EmailDelivery,
    SMTPEmailDelivery,
    get_email_delivery,
)
from app.services.one_time_code import OneTimeCodeStore
from app.services.permissions import can_access, has_role
from app.services.token_blacklist import TokenBlacklistStore
from app.services.tokens import TokenIssuer
from app.services.user_directory import SQLUserDirectory, UserDirectory

__all__ = [
    "AuthResult",
    "AuthSession",
    "AuthSessionService",
    "ConsoleEmailDelivery",
    "EmailDelivery",
    "OneTimeCodeStore",
    "PurgeReport",
    "RefreshedAccess",
    "SMTPEmailDelivery",
    "SQLUserDirectory",
    "TokenBlacklistStore",
    "TokenIssuer",
    "UserDirectory",
    "can_access",
    "get_email_delivery",
    "has_role",
]
