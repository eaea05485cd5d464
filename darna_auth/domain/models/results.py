from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class LoginResult:
    """Outcome of a login step: either a token pair or a pending second factor."""

    user: Dict[str, Any]
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    pending_two_factor: bool = False
    user_id: Optional[int] = None
    challenge_token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return not self.pending_two_factor and self.access_token is not None


@dataclass(slots=True)
class RefreshResult:
    access_token: str
    user: Dict[str, Any]


@dataclass(slots=True)
class TwoFactorSetup:
    secret: str
    provisioning_uri: str
    qr_code_data_url: str
    backup_codes: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TwoFactorStatus:
    enabled: bool
    backup_codes_count: int
    backup_codes_remaining: int
    setup_pending: bool


@dataclass(slots=True)
class ConnectionIdentity:
    """Identity attached to an authenticated real-time connection."""

    user_id: int
    name: str
    email: str
