"""Ephemeral token structures; never persisted."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
TWO_FACTOR_CHALLENGE = "2fa_challenge"


@dataclass(slots=True, frozen=True)
class TokenPayload:
    user_id: int
    email: str
    role: str
    account_type: str

    def to_claims(self) -> Dict[str, Any]:
        return {
            "sub": str(self.user_id),
            "email": self.email,
            "role": self.role,
            "account_type": self.account_type,
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "TokenPayload":
        return cls(
            user_id=int(claims["sub"]),
            email=str(claims["email"]),
            role=str(claims["role"]),
            account_type=str(claims["account_type"]),
        )


@dataclass(slots=True, frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
