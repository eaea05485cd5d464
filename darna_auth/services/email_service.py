"""Service for sending account emails."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from datetime import timedelta
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)


def describe_duration(duration: timedelta) -> str:
    """Render a link lifetime as plain words, e.g. "24 hours" or "30 minutes"."""
    minutes = max(int(duration.total_seconds() // 60), 1)
    if minutes % 1440 == 0 and minutes >= 2880:
        value, unit = minutes // 1440, "day"
    elif minutes % 60 == 0:
        value, unit = minutes // 60, "hour"
    else:
        value, unit = minutes, "minute"
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


class EmailService:
    """Service for sending verification and password-reset emails via SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "Darna",
        base_url: str = "http://localhost:3000",
        timeout: float = 10.0,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
    ):
        self.smtp_host = smtp_host or ""
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username or ""
        self.smtp_password = smtp_password or ""
        self.from_email = from_email or ""
        self.from_name = from_name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    def send_verification_email(self, to_email: str, verification_token: str) -> bool:
        """
        Send email verification email.

        Args:
            to_email: Recipient email
            verification_token: Verification token

        Returns:
            True if sent successfully, False otherwise
        """
        verification_url = f"{self.base_url}/auth/verify-email?token={verification_token}"
        lifetime = describe_duration(self.verification_ttl)

        subject = "Verify your email - Darna"
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1 style="color: #1e293b;">Welcome to Darna!</h1>
                <p style="color: #475569; line-height: 1.6;">
                    Thanks for signing up. Please confirm your email address to activate your account:
                </p>
                <p style="text-align: center; margin: 30px 0;">
                    <a href="{verification_url}"
                       style="background-color: #3b82f6; color: white; padding: 15px 30px;
                              text-decoration: none; border-radius: 5px; font-weight: bold;">
                        Verify email
                    </a>
                </p>
                <p style="color: #64748b; font-size: 14px;">This link expires in {lifetime}.</p>
                <p style="color: #64748b; font-size: 14px;">
                    If you did not create a Darna account, you can ignore this email.
                </p>
            </body>
        </html>
        """

        text_body = f"""
        Welcome to Darna!

        To activate your account, open the link below:
        {verification_url}

        This link expires in {lifetime}.

        If you did not create a Darna account, you can ignore this email.
        """

        return self._send_email(to_email, subject, html_body, text_body)

    def send_password_reset_email(self, to_email: str, reset_token: str) -> bool:
        """
        Send password reset email.

        Args:
            to_email: Recipient email
            reset_token: Password reset token

        Returns:
            True if sent successfully, False otherwise
        """
        reset_url = f"{self.base_url}/auth/reset-password?token={reset_token}"
        lifetime = describe_duration(self.reset_ttl)

        subject = "Reset your password - Darna"
        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1 style="color: #1e293b;">Password reset</h1>
                <p style="color: #475569; line-height: 1.6;">
                    We received a request to reset your password. Choose a new one here:
                </p>
                <p style="text-align: center; margin: 30px 0;">
                    <a href="{reset_url}"
                       style="background-color: #3b82f6; color: white; padding: 15px 30px;
                              text-decoration: none; border-radius: 5px; font-weight: bold;">
                        Reset password
                    </a>
                </p>
                <p style="color: #64748b; font-size: 14px;">This link expires in {lifetime} and can be used once.</p>
                <p style="color: #64748b; font-size: 14px;">
                    If you did not request a reset, you can ignore this email.
                </p>
            </body>
        </html>
        """

        text_body = f"""
        Darna - Password reset

        Open the link below to choose a new password:
        {reset_url}

        This link expires in {lifetime} and can be used once.
        """

        return self._send_email(to_email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        """
        Send an email via SMTP.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.warning("SMTP transport not configured; email to %s not sent.", to_email)
            return False

        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            return True

        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send email to %s", to_email)
            return False
