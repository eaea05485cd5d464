from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from ...domain.errors import (
    AccountBlocked,
    AccountInactive,
    ConcurrentUpdate,
    DuplicateEmail,
    EmailNotVerified,
    InternalError,
    InvalidCredentials,
    InvalidPassword,
    LinkTokenExpired,
    LinkTokenInvalid,
    NotFound,
    ServiceUnavailable,
    StorageError,
    TwoFactorAlreadyEnabled,
    TwoFactorInvalidCode,
    TwoFactorNotEnabled,
    TwoFactorRequired,
    TwoFactorSetupMissing,
    UserInactive,
    ValidationError,
)
from ...domain.models import (
    LoginResult,
    NewUser,
    RefreshResult,
    TokenPayload,
    TwoFactorSetup,
    TwoFactorStatus,
    User,
)
from ...domain.models.user import ACCOUNT_TYPES, role_for_account_type
from ...domain.ports.persistence import CredentialStore, EmailSender
from ...services.password_hasher import PasswordHasher
from ...services.secret_tokens import SecretTokenGenerator
from ...services.token_service import TokenService
from ...services.two_factor import TwoFactorService

logger = logging.getLogger(__name__)

T = TypeVar("T")

PASSWORD_RESET_ACK = "If this email exists, you will receive a password reset link."
RESEND_VERIFICATION_ACK = "If this email exists, a verification email has been sent."
PROFILE_FIELDS = ("first_name", "last_name", "phone", "preferences", "company_info")
_BCRYPT_MAX_BYTES = 72


def to_safe_view(user: User) -> Dict[str, Any]:
    """Public projection of a user: no password hash, tokens, secrets or backup codes."""
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "phone": user.phone,
        "account_type": user.account_type,
        "role": user.role,
        "company_info": user.company_info,
        "preferences": user.preferences,
        "email_verified": user.email_verified,
        "two_factor_enabled": user.two_factor_enabled,
        "is_active": user.is_active,
        "is_blocked": user.is_blocked,
        "blocked_reason": user.blocked_reason,
        "stats": {
            "last_login": user.last_login,
            "login_count": user.login_count,
            "failed_login_count": user.failed_login_count,
        },
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def token_payload_for(user: User) -> TokenPayload:
    return TokenPayload(
        user_id=user.id,
        email=user.email,
        role=user.role,
        account_type=user.account_type,
    )


class AuthService:
    """Coordinates registration, sessions, email verification, password reset and 2FA.

    An authentication attempt moves unauthenticated -> password-verified ->
    (two-factor-pending when enabled) -> authenticated. Blocking work (store
    calls, bcrypt, SMTP) runs in worker threads under a timeout; every state
    change gated on a token or a backup code is a single conditional write in
    the credential store.
    """

    def __init__(
        self,
        store: CredentialStore,
        password_hasher: PasswordHasher,
        token_service: TokenService,
        secret_tokens: SecretTokenGenerator,
        two_factor: TwoFactorService,
        email_sender: EmailSender,
        *,
        production: bool = False,
        store_timeout: float = 5.0,
        email_timeout: float = 10.0,
        email_verification_ttl: timedelta = timedelta(hours=24),
        password_reset_ttl: timedelta = timedelta(hours=1),
        two_factor_setup_ttl: timedelta = timedelta(minutes=15),
        password_min_length: int = 6,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._hasher = password_hasher
        self._tokens = token_service
        self._secret_tokens = secret_tokens
        self._two_factor = two_factor
        self._email = email_sender
        self._production = production
        self._store_timeout = store_timeout
        self._email_timeout = email_timeout
        self._email_verification_ttl = email_verification_ttl
        self._password_reset_ttl = password_reset_ttl
        self._two_factor_setup_ttl = two_factor_setup_ttl
        self._password_min_length = password_min_length
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    # Registration ---------------------------------------------------------
    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        account_type: str = "individual",
        phone: Optional[str] = None,
        company_info: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        email_clean = self._normalize_email(email)
        self._validate_password(password)
        first_clean = (first_name or "").strip()
        last_clean = (last_name or "").strip()
        if not first_clean or not last_clean:
            raise ValidationError("First and last name are required.")
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError("Account type must be 'individual' or 'business'.")

        if await self._call(self._store.get_user_by_email, email_clean):
            raise DuplicateEmail()

        password_hash = await self._compute(self._hasher.hash, password)
        verification_token = self._secret_tokens.generate()
        user = await self._call(
            self._store.create_user,
            NewUser(
                email=email_clean,
                password_hash=password_hash,
                first_name=first_clean,
                last_name=last_clean,
                phone=phone.strip() if phone else None,
                account_type=account_type,
                role=role_for_account_type(account_type),
                company_info=company_info,
                email_verification_token=verification_token,
                email_verification_expires=self._clock() + self._email_verification_ttl,
            ),
        )
        logger.info("Registered user %s", user.id)

        sent = await self._send(self._email.send_verification_email, user.email, verification_token)
        if not sent:
            if self._production:
                logger.warning("Verification email for user %s failed; account stays unverified.", user.id)
            else:
                logger.warning(
                    "Verification email for user %s failed; marking verified outside production.", user.id
                )
                await self._call(self._store.mark_email_verified, user.id)
                user = await self._require_user(user.id)
        return to_safe_view(user)

    # Sessions ------------------------------------------------------------
    async def login(self, email: str, password: str) -> LoginResult:
        email_clean = (email or "").strip().lower()
        user = await self._call(self._store.get_user_by_email, email_clean) if email_clean else None
        if user is None:
            await self._compute(self._hasher.dummy_verify, password or "")
            logger.warning("Failed login for unknown email")
            raise InvalidCredentials()

        if not await self._compute(self._hasher.verify, password or "", user.password_hash):
            await self._call(self._store.record_failed_login, user.id)
            logger.warning("Failed login for user %s", user.id)
            raise InvalidCredentials()

        self._ensure_can_sign_in(user)
        if not user.email_verified and self._production:
            raise EmailNotVerified()

        user = await self._call(self._store.record_login, user.id, self._clock())
        if user.two_factor_enabled:
            logger.info("Password verified for user %s; awaiting second factor", user.id)
            return LoginResult(
                user=to_safe_view(user),
                pending_two_factor=True,
                user_id=user.id,
                challenge_token=self._tokens.issue_two_factor_challenge(token_payload_for(user)),
            )

        logger.info("User %s signed in", user.id)
        return self._authenticated(user)

    async def verify_2fa_for_login(self, user_id: int, code: str) -> LoginResult:
        if not (code or "").strip():
            raise TwoFactorRequired()
        user = await self._call(self._store.get_user_by_id, user_id)
        if user is None or not user.two_factor_enabled:
            raise TwoFactorInvalidCode()
        self._ensure_can_sign_in(user)
        if not await self._check_second_factor(user, code):
            await self._call(self._store.record_failed_login, user.id)
            logger.warning("Invalid second factor for user %s", user.id)
            raise TwoFactorInvalidCode()
        logger.info("User %s signed in with second factor", user.id)
        return self._authenticated(user)

    async def verify_2fa_challenge(self, challenge_token: str, code: str) -> LoginResult:
        payload = self._tokens.verify_two_factor_challenge(challenge_token)
        return await self.verify_2fa_for_login(payload.user_id, code)

    async def refresh_token(self, refresh_token: str) -> RefreshResult:
        payload = self._tokens.verify_refresh_token(refresh_token)
        user = await self._call(self._store.get_user_by_id, payload.user_id)
        if user is None or not user.is_active or user.is_blocked:
            raise UserInactive()
        return RefreshResult(
            access_token=self._tokens.issue_access_token(token_payload_for(user)),
            user=to_safe_view(user),
        )

    async def authenticate_token(self, access_token: str) -> User:
        """Resolve a bearer access token to the live user record."""
        payload = self._tokens.verify(access_token)
        user = await self._call(self._store.get_user_by_id, payload.user_id)
        if user is None or not user.is_active:
            raise UserInactive()
        if user.is_blocked:
            raise AccountBlocked()
        return user

    async def logout(self, user_id: int) -> Dict[str, Any]:
        logger.info("User %s signed out", user_id)
        return {"success": True, "message": "Signed out successfully."}

    # Email verification ----------------------------------------------------
    async def verify_email(self, token: str) -> Dict[str, Any]:
        if not token:
            raise LinkTokenInvalid("Invalid or expired verification token.")
        user = await self._call(self._store.get_user_by_verification_token, token)
        if user is None:
            raise LinkTokenInvalid("Invalid or expired verification token.")
        now = self._clock()
        if user.email_verification_expires is None or user.email_verification_expires <= now:
            raise LinkTokenExpired("Verification token has expired.")
        if not await self._call(self._store.consume_email_verification, token, now):
            raise LinkTokenInvalid("Invalid or expired verification token.")
        logger.info("Email verified for user %s", user.id)
        return {"success": True, "message": "Email verified successfully."}

    async def resend_verification(self, email: str) -> Dict[str, Any]:
        ack = {"success": True, "message": RESEND_VERIFICATION_ACK}
        email_clean = (email or "").strip().lower()
        user = await self._call(self._store.get_user_by_email, email_clean) if email_clean else None
        if user is None or user.email_verified:
            return ack
        token = self._secret_tokens.generate()
        await self._call(
            self._store.set_email_verification,
            user.id,
            token,
            self._clock() + self._email_verification_ttl,
        )
        if not await self._send(self._email.send_verification_email, user.email, token):
            logger.warning("Verification email to user %s could not be sent", user.id)
        return ack

    # Passwords -------------------------------------------------------------
    async def request_password_reset(self, email: str) -> Dict[str, Any]:
        ack = {"success": True, "message": PASSWORD_RESET_ACK}
        email_clean = (email or "").strip().lower()
        user = await self._call(self._store.get_user_by_email, email_clean) if email_clean else None
        if user is None:
            return ack

        token = self._secret_tokens.generate()
        await self._call(
            self._store.set_password_reset, user.id, token, self._clock() + self._password_reset_ttl
        )
        if not await self._send(self._email.send_password_reset_email, user.email, token):
            logger.warning("Password reset email to user %s could not be sent", user.id)
        else:
            logger.info("Password reset requested for user %s", user.id)
        return ack

    async def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        self._validate_password(new_password)
        if not token:
            raise LinkTokenInvalid("Invalid or expired reset token.")
        user = await self._call(self._store.get_user_by_reset_token, token)
        if user is None:
            raise LinkTokenInvalid("Invalid or expired reset token.")
        now = self._clock()
        if user.password_reset_expires is None or user.password_reset_expires <= now:
            raise LinkTokenExpired("Reset token has expired.")

        password_hash = await self._compute(self._hasher.hash, new_password)
        if not await self._call(self._store.consume_password_reset, token, now, password_hash):
            raise LinkTokenInvalid("Invalid or expired reset token.")
        logger.info("Password reset completed for user %s", user.id)
        return {"success": True, "message": "Password reset successfully."}

    async def change_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> Dict[str, Any]:
        self._validate_password(new_password)
        user = await self._require_user(user_id)
        if not await self._compute(self._hasher.verify, current_password or "", user.password_hash):
            logger.warning("Password change rejected for user %s", user.id)
            raise InvalidCredentials("Current password is incorrect.")

        password_hash = await self._compute(self._hasher.hash_if_changed, new_password, user.password_hash)
        if not await self._call(self._store.update_password, user.id, password_hash, user.password_hash):
            raise ConcurrentUpdate()
        logger.info("Password changed for user %s", user.id)
        return {"success": True, "message": "Password changed successfully."}

    # Profile ---------------------------------------------------------------
    async def get_profile(self, user_id: int) -> Dict[str, Any]:
        return to_safe_view(await self._require_user(user_id))

    async def check_auth(self, user_id: int) -> Dict[str, Any]:
        user = await self._call(self._store.get_user_by_id, user_id)
        if user is None or not user.is_active:
            raise UserInactive()
        return to_safe_view(user)

    async def update_profile(self, user_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        user = await self._require_user(user_id)
        for name in PROFILE_FIELDS:
            if name not in fields or fields[name] is None:
                continue
            value = fields[name]
            if name in ("first_name", "last_name"):
                value = str(value).strip()
                if not value:
                    raise ValidationError("First and last name cannot be empty.")
            elif name in ("preferences", "company_info") and not isinstance(value, dict):
                raise ValidationError(f"{name} must be an object.")
            setattr(user, name, value)
        updated = await self._call(self._store.update_user, user)
        return to_safe_view(updated)

    # Two-factor --------------------------------------------------------------
    async def generate_2fa_setup(self, user_id: int) -> TwoFactorSetup:
        user = await self._discard_expired_setup(await self._require_user(user_id))
        if user.two_factor_enabled:
            raise TwoFactorAlreadyEnabled()

        secret, uri = self._two_factor.generate_secret(user.email)
        qr_code = await self._compute(self._two_factor.generate_qr_code_data_url, uri)
        backup_codes = self._two_factor.generate_backup_codes()
        started = await self._call(
            self._store.begin_two_factor_setup,
            user.id,
            secret,
            self._clock() + self._two_factor_setup_ttl,
            self._two_factor.hash_backup_codes(backup_codes),
        )
        if not started:
            raise TwoFactorAlreadyEnabled()
        logger.info("Two-factor setup started for user %s", user.id)
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=uri,
            qr_code_data_url=qr_code,
            backup_codes=backup_codes,
        )

    async def enable_2fa(self, user_id: int, code: str) -> Dict[str, Any]:
        user = await self._discard_expired_setup(await self._require_user(user_id))
        if user.two_factor_enabled:
            raise TwoFactorAlreadyEnabled()
        pending = user.two_factor_pending_secret
        if not pending:
            raise TwoFactorSetupMissing()

        if not self._two_factor.verify_token(pending, code) and not await self._consume_backup_code(
            user, code
        ):
            logger.warning("Invalid code while enabling two-factor for user %s", user.id)
            raise TwoFactorInvalidCode()
        if not await self._call(self._store.activate_two_factor, user.id, pending):
            raise ConcurrentUpdate()
        logger.info("Two-factor enabled for user %s", user.id)
        return {"success": True, "message": "Two-factor authentication enabled."}

    async def disable_2fa(self, user_id: int, password: str) -> Dict[str, Any]:
        user = await self._require_user(user_id)
        if not user.two_factor_enabled:
            raise TwoFactorNotEnabled()
        if not await self._compute(self._hasher.verify, password or "", user.password_hash):
            logger.warning("Invalid password while disabling two-factor for user %s", user.id)
            raise InvalidPassword()
        await self._call(self._store.clear_two_factor, user.id)
        logger.info("Two-factor disabled for user %s", user.id)
        return {"success": True, "message": "Two-factor authentication disabled."}

    async def verify_2fa_code(self, user_id: int, code: str) -> Dict[str, Any]:
        """Step-up check for an already signed-in user."""
        user = await self._require_user(user_id)
        if not user.two_factor_enabled:
            raise TwoFactorNotEnabled()
        if not await self._check_second_factor(user, code):
            raise TwoFactorInvalidCode()
        return {"success": True, "message": "Two-factor code verified."}

    async def get_2fa_status(self, user_id: int) -> TwoFactorStatus:
        user = await self._discard_expired_setup(await self._require_user(user_id))
        setup_pending = not user.two_factor_enabled and user.two_factor_pending_secret is not None
        total = used = 0
        if user.two_factor_enabled or setup_pending:
            total, used = await self._call(self._store.count_backup_codes, user.id)
        return TwoFactorStatus(
            enabled=user.two_factor_enabled,
            backup_codes_count=total,
            backup_codes_remaining=total - used,
            setup_pending=setup_pending,
        )

    # Internals ---------------------------------------------------------------
    def _authenticated(self, user: User) -> LoginResult:
        pair = self._tokens.issue_pair(token_payload_for(user))
        return LoginResult(
            user=to_safe_view(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    async def _check_second_factor(self, user: User, code: str) -> bool:
        if self._two_factor.verify_token(user.two_factor_secret, code):
            return True
        if await self._consume_backup_code(user, code):
            logger.info("Backup code used by user %s", user.id)
            return True
        return False

    async def _consume_backup_code(self, user: User, code: str) -> bool:
        if not code or not self._two_factor.looks_like_backup_code(code):
            return False
        codes, used = await self._call(self._store.get_backup_codes, user.id)
        if not self._two_factor.verify_backup_code(codes, used, code):
            return False
        # The read above can be stale; only the conditional consume decides.
        return await self._call(
            self._store.consume_backup_code,
            user.id,
            self._two_factor.hash_backup_code(code),
            self._clock(),
        )

    async def _discard_expired_setup(self, user: User) -> User:
        """Remove a lapsed, never-enabled setup so its secret and codes do not linger."""
        expires = user.two_factor_pending_expires
        if user.two_factor_enabled or expires is None or expires > self._clock():
            return user
        if await self._call(self._store.discard_expired_two_factor_setup, user.id, self._clock()):
            logger.info("Discarded expired two-factor setup for user %s", user.id)
        return await self._require_user(user.id)

    @staticmethod
    def _ensure_can_sign_in(user: User) -> None:
        if not user.is_active:
            raise AccountInactive()
        if user.is_blocked:
            raise AccountBlocked(
                f"This account has been blocked: {user.blocked_reason}" if user.blocked_reason else None
            )

    async def _require_user(self, user_id: int) -> User:
        user = await self._call(self._store.get_user_by_id, user_id)
        if user is None:
            raise NotFound()
        return user

    def _normalize_email(self, email: str) -> str:
        email_clean = (email or "").strip().lower()
        if not email_clean or "@" not in email_clean:
            raise ValidationError("A valid email is required.")
        return email_clean

    def _validate_password(self, password: str) -> None:
        if not password or len(password) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters."
            )
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes.")

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), self._store_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Credential store call %s timed out", getattr(func, "__name__", func))
            raise ServiceUnavailable() from exc
        except StorageError as exc:
            logger.exception("Credential store call %s failed", getattr(func, "__name__", func))
            raise InternalError() from exc

    async def _compute(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except (ValueError, TypeError) as exc:
            logger.exception("Crypto operation %s failed", getattr(func, "__name__", func))
            raise InternalError() from exc

    async def _send(self, func: Callable[..., bool], *args: Any) -> bool:
        try:
            return bool(await asyncio.wait_for(asyncio.to_thread(func, *args), self._email_timeout))
        except asyncio.TimeoutError:
            logger.warning("Email dispatch %s timed out", getattr(func, "__name__", func))
            return False
        except Exception:
            logger.exception("Email dispatch %s failed", getattr(func, "__name__", func))
            return False
