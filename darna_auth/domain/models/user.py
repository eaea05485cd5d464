"""User domain model for marketplace account authentication."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ACCOUNT_INDIVIDUAL = "individual"
ACCOUNT_BUSINESS = "business"
ACCOUNT_TYPES = (ACCOUNT_INDIVIDUAL, ACCOUNT_BUSINESS)

ROLE_VISITOR = "visitor"
ROLE_INDIVIDUAL = "individual"
ROLE_BUSINESS = "business"
ROLE_ADMIN = "admin"
ROLES = (ROLE_VISITOR, ROLE_INDIVIDUAL, ROLE_BUSINESS, ROLE_ADMIN)


def role_for_account_type(account_type: str) -> str:
    return ROLE_BUSINESS if account_type == ACCOUNT_BUSINESS else ROLE_INDIVIDUAL


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(slots=True)
class User:
    """
    User entity owned by the credential store.

    Attributes:
        id: Unique identifier (assigned by the store)
        email: Lower-cased, unique email address
        password_hash: bcrypt digest of the password
        email_verification_token / email_verification_expires: set together or cleared together
        password_reset_token / password_reset_expires: same pairing, single use
        two_factor_secret: active TOTP secret, present only while 2FA is enabled
        two_factor_pending_secret / two_factor_pending_expires: setup awaiting proof of possession
        version: optimistic-concurrency counter bumped on every persisted update
    """

    id: int
    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    account_type: str = ACCOUNT_INDIVIDUAL
    role: str = ROLE_INDIVIDUAL
    company_info: Optional[Dict[str, Any]] = None
    preferences: Dict[str, Any] = field(default_factory=dict)
    email_verified: bool = False
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    two_factor_enabled: bool = False
    two_factor_secret: Optional[str] = None
    two_factor_pending_secret: Optional[str] = None
    two_factor_pending_expires: Optional[datetime] = None
    is_active: bool = True
    is_blocked: bool = False
    blocked_reason: Optional[str] = None
    last_login: Optional[datetime] = None
    login_count: int = 0
    failed_login_count: int = 0
    version: int = 1
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} email={self.email} role={self.role} "
            f"active={self.is_active} verified={self.email_verified}>"
        )


@dataclass(slots=True)
class NewUser:
    """Fields required to insert a user; the store assigns id, version and timestamps."""

    email: str
    password_hash: str
    first_name: str
    last_name: str
    phone: Optional[str]
    account_type: str
    role: str
    company_info: Optional[Dict[str, Any]]
    email_verification_token: Optional[str]
    email_verification_expires: Optional[datetime]
