"""Password hashing with bcrypt."""

import bcrypt


class PasswordHasher:
    """One-way salted password hashing with a tunable cost factor."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        # Compared against when no account matches, so a missing user costs the same as a wrong password.
        self._dummy_hash = bcrypt.hashpw(b"darna-dummy-password", bcrypt.gensalt(rounds)).decode("utf-8")

    def hash(self, password: str) -> str:
        """
        Hash a plain text password.

        Args:
            password: Plain text password

        Returns:
            bcrypt digest including salt and cost
        """
        return bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(self.rounds)
        ).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a plain text password against a stored digest.

        Malformed digests verify as False rather than raising.
        """
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def dummy_verify(self, password: str) -> bool:
        self.verify(password, self._dummy_hash)
        return False

    def hash_if_changed(self, password: str, current_hash: str) -> str:
        """Return ``current_hash`` when it already matches ``password``, else a fresh digest."""
        if current_hash and self.verify(password, current_hash):
            return current_hash
        return self.hash(password)
