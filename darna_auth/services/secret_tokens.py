import secrets


class SecretTokenGenerator:
    """Opaque bearer tokens for email verification and password reset links."""

    def __init__(self, num_bytes: int = 32) -> None:
        if num_bytes < 32:
            raise ValueError("Secret tokens need at least 32 random bytes.")
        self._num_bytes = num_bytes

    def generate(self) -> str:
        return secrets.token_hex(self._num_bytes)
