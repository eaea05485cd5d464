from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Set, Tuple

from ..models import NewUser, User


class CredentialStore(Protocol):
    """Durable user records with the atomic operations the auth flows rely on.

    Implementations raise ``DuplicateEmail`` when ``create_user`` hits the
    email uniqueness constraint, ``ConcurrentUpdate`` when ``update_user``
    loses a version race, and ``StorageError`` for anything else.
    """

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        ...

    def get_user_by_verification_token(self, token: str) -> Optional[User]:
        ...

    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        ...

    def create_user(self, new_user: NewUser) -> User:
        ...

    def update_user(self, user: User) -> User:
        ...

    def record_login(self, user_id: int, at: datetime) -> User:
        ...

    def record_failed_login(self, user_id: int) -> None:
        ...

    def set_email_verification(
        self, user_id: int, token: Optional[str], expires_at: Optional[datetime]
    ) -> None:
        ...

    def mark_email_verified(self, user_id: int) -> None:
        ...

    def consume_email_verification(self, token: str, now: datetime) -> bool:
        ...

    def set_password_reset(self, user_id: int, token: str, expires_at: datetime) -> None:
        ...

    def consume_password_reset(self, token: str, now: datetime, password_hash: str) -> bool:
        ...

    def update_password(self, user_id: int, password_hash: str, expected_hash: str) -> bool:
        ...

    def begin_two_factor_setup(
        self,
        user_id: int,
        secret: str,
        expires_at: datetime,
        backup_code_hashes: List[str],
    ) -> bool:
        ...

    def activate_two_factor(self, user_id: int, pending_secret: str) -> bool:
        ...

    def clear_two_factor(self, user_id: int) -> None:
        ...

    def discard_expired_two_factor_setup(self, user_id: int, now: datetime) -> bool:
        """Drop a pending setup and its backup codes once the setup window has passed."""
        ...

    def consume_backup_code(self, user_id: int, code_hash: str, at: datetime) -> bool:
        ...

    def get_backup_codes(self, user_id: int) -> Tuple[Set[str], Set[str]]:
        """Return (all code digests, used code digests)."""
        ...

    def count_backup_codes(self, user_id: int) -> Tuple[int, int]:
        ...


class EmailSender(Protocol):
    """Outbound email transport. Implementations return False or raise on failure."""

    def send_verification_email(self, to_email: str, verification_token: str) -> bool:
        ...

    def send_password_reset_email(self, to_email: str, reset_token: str) -> bool:
        ...
