"""Domain models for the Darna authentication core."""

from .results import ConnectionIdentity, LoginResult, RefreshResult, TwoFactorSetup, TwoFactorStatus
from .token import TokenPair, TokenPayload
from .user import NewUser, User

__all__ = [
    "ConnectionIdentity",
    "LoginResult",
    "NewUser",
    "RefreshResult",
    "TokenPair",
    "TokenPayload",
    "TwoFactorSetup",
    "TwoFactorStatus",
    "User",
]
