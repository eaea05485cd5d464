import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_PRODUCTION_NAMES = {"production", "prod"}


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.jwt_secret = self._get("JWT_SECRET")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.access_token_exp_minutes = self._get_int("ACCESS_TOKEN_EXP_MINUTES", default=60)
        self.refresh_token_exp_days = self._get_int("REFRESH_TOKEN_EXP_DAYS", default=30)
        self.environment = os.getenv("APP_ENV", "development").strip().lower()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/auth.db")).resolve()
        self.store_timeout_seconds = self._get_float("STORE_TIMEOUT_SECONDS", default=5.0)
        self.email_timeout_seconds = self._get_float("EMAIL_TIMEOUT_SECONDS", default=10.0)
        self.bcrypt_rounds = self._get_int("BCRYPT_ROUNDS", default=12)
        self.totp_issuer = os.getenv("TOTP_ISSUER", "Darna")
        self.totp_valid_window = self._get_int("TOTP_VALID_WINDOW", default=1)
        self.backup_code_count = self._get_int("BACKUP_CODE_COUNT", default=10)
        self.two_factor_setup_exp_minutes = self._get_int("TWO_FACTOR_SETUP_EXP_MINUTES", default=15)
        self.email_verification_exp_hours = self._get_int("EMAIL_VERIFICATION_EXP_HOURS", default=24)
        self.password_reset_exp_minutes = self._get_int("PASSWORD_RESET_EXP_MINUTES", default=60)
        self.password_min_length = self._get_int("PASSWORD_MIN_LENGTH", default=6)
        self.frontend_base_url = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def is_production(self) -> bool:
        return self.environment in _PRODUCTION_NAMES

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be a number") from exc
