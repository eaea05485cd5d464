"""Error taxonomy for the authentication core.

Every ``AuthError`` carries a stable, user-safe message. Lower-layer
failures are wrapped into ``InternalError`` or ``ServiceUnavailable``
before they leave the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base class for errors that may be shown to the caller."""

    code = "auth_error"
    status_code = 400
    default_message = "Authentication error."
    retryable = False

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input."


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    default_message = "An account with this email already exists."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password."


class AccountBlocked(AuthError):
    code = "account_blocked"
    status_code = 403
    default_message = "This account has been blocked."


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 403
    default_message = "This account has been deactivated."


class EmailNotVerified(AuthError):
    code = "email_not_verified"
    status_code = 403
    default_message = "Please verify your email before signing in."


class TokenInvalid(AuthError):
    code = "token_invalid"
    status_code = 401
    default_message = "Invalid token."


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401
    default_message = "Token has expired."


class LinkTokenInvalid(TokenInvalid):
    """An emailed verification or reset token that is unknown or already used."""

    status_code = 400


class LinkTokenExpired(TokenExpired):
    status_code = 400


class UserInactive(AuthError):
    code = "user_inactive"
    status_code = 401
    default_message = "User not found or inactive."


class TwoFactorRequired(AuthError):
    code = "two_factor_required"
    status_code = 401
    default_message = "Two-factor verification required."


class TwoFactorInvalidCode(AuthError):
    code = "two_factor_invalid_code"
    status_code = 401
    default_message = "Invalid code. Use your authenticator app or a backup code."


class TwoFactorAlreadyEnabled(AuthError):
    code = "two_factor_already_enabled"
    status_code = 409
    default_message = "Two-factor authentication is already enabled."


class TwoFactorNotEnabled(AuthError):
    code = "two_factor_not_enabled"
    status_code = 409
    default_message = "Two-factor authentication is not enabled."


class TwoFactorSetupMissing(AuthError):
    code = "two_factor_setup_missing"
    status_code = 409
    default_message = "No pending two-factor setup. Start the setup again."


class InvalidPassword(AuthError):
    code = "invalid_password"
    status_code = 401
    default_message = "Incorrect password."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "User not found."


class ConcurrentUpdate(AuthError):
    code = "concurrent_update"
    status_code = 409
    default_message = "The account was modified concurrently. Please retry."
    retryable = True


class ServiceUnavailable(AuthError):
    code = "service_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable. Please retry."
    retryable = True


class InternalError(AuthError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error."


class StorageError(Exception):
    """Raised by credential stores for failures other than domain conflicts."""
