# Rugalika Models
from app.models.base import Base, BaseModel
from app.models.one_time_code import OneTimeCode
from app.models.token_blacklist import TokenBlacklist
from app.models.user import User

__all__ = [
    "Base",
    "BaseModel",
    "OneTimeCode",
    "TokenBlacklist",
    "User",
]
