"""
Two-factor authentication primitives.

Implements TOTP (RFC 6238, 30 second steps) with pyotp, QR payload rendering
with qrcode, and single-use backup codes. Backup codes are handed to the user
once in plaintext and only their SHA-256 digests are stored.
"""

import base64
import hashlib
import io
import secrets
from typing import Iterable, List, Optional, Set

import pyotp
import qrcode


class TwoFactorService:
    """Stateless TOTP and backup-code helpers."""

    def __init__(
        self,
        issuer: str = "Darna",
        valid_window: int = 1,
        backup_code_count: int = 10,
    ) -> None:
        self.issuer = issuer
        self.valid_window = valid_window
        self.backup_code_count = backup_code_count

    def generate_secret(self, label: str) -> tuple[str, str]:
        """
        Generate a new shared secret and its provisioning URI.

        Args:
            label: Account label shown in the authenticator app (the user's email)

        Returns:
            Tuple of (base32 secret, otpauth:// URI)
        """
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=self.issuer)
        return secret, uri

    def generate_qr_code_data_url(self, uri: str) -> str:
        """Render the provisioning URI as a base64 PNG data URI."""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(uri)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        b64 = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return f"data:image/png;base64,{b64}"

    def verify_token(self, secret: Optional[str], code: Optional[str]) -> bool:
        """
        Check a 6-digit TOTP code with +/- ``valid_window`` steps of clock skew.

        Does not mutate any state.
        """
        if not secret or not code:
            return False
        digits = "".join(ch for ch in code if ch.isdigit())
        if len(digits) != 6 or len(digits) != len(code.replace(" ", "")):
            return False
        return pyotp.TOTP(secret).verify(digits, valid_window=self.valid_window)

    def generate_backup_codes(self, count: Optional[int] = None) -> List[str]:
        """
        Generate independent single-use backup codes.

        Codes are 10 uppercase hex characters formatted as ``XXXXX-XXXXX``.
        """
        codes = []
        for _ in range(count or self.backup_code_count):
            raw = secrets.token_hex(5).upper()
            codes.append(f"{raw[:5]}-{raw[5:]}")
        return codes

    @staticmethod
    def normalize_backup_code(code: str) -> str:
        return code.replace("-", "").replace(" ", "").strip().upper()

    def hash_backup_code(self, code: str) -> str:
        return hashlib.sha256(self.normalize_backup_code(code).encode("utf-8")).hexdigest()

    def hash_backup_codes(self, codes: Iterable[str]) -> List[str]:
        return [self.hash_backup_code(code) for code in codes]

    def verify_backup_code(self, codes: Set[str], used: Set[str], submitted: str) -> bool:
        """
        True only if ``submitted`` hashes to a member of ``codes`` not in ``used``.

        Both sets hold digests. The caller must record the use atomically.
        """
        if not submitted:
            return False
        digest = self.hash_backup_code(submitted)
        return digest in codes and digest not in used

    def looks_like_backup_code(self, code: str) -> bool:
        normalized = self.normalize_backup_code(code)
        return len(normalized) == 10 and all(ch in "0123456789ABCDEF" for ch in normalized)
