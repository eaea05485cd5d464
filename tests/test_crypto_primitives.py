"""Tests for password hashing and opaque secret tokens."""

import pytest

from darna_auth.services.password_hasher import PasswordHasher
from darna_auth.services.secret_tokens import SecretTokenGenerator


class TestPasswordHasher:
    def test_hash_is_salted_and_verifiable(self, hasher):
        first = hasher.hash("Secret123")
        second = hasher.hash("Secret123")

        assert first != second
        assert "Secret123" not in first
        assert hasher.verify("Secret123", first)
        assert hasher.verify("Secret123", second)

    def test_wrong_password_does_not_verify(self, hasher):
        digest = hasher.hash("Secret123")
        assert not hasher.verify("secret123", digest)

    def test_malformed_digest_verifies_false(self, hasher):
        assert hasher.verify("Secret123", "not-a-bcrypt-hash") is False

    def test_dummy_verify_always_fails(self, hasher):
        assert hasher.dummy_verify("darna-dummy-password") is False

    def test_cost_factor_is_embedded(self):
        hasher = PasswordHasher(rounds=5)
        assert hasher.hash("Secret123").startswith("$2b$05$")

    def test_hash_if_changed_keeps_matching_digest(self, hasher):
        digest = hasher.hash("Secret123")
        assert hasher.hash_if_changed("Secret123", digest) == digest

        changed = hasher.hash_if_changed("Another456", digest)
        assert changed != digest
        assert hasher.verify("Another456", changed)


class TestSecretTokenGenerator:
    def test_tokens_are_hex_and_256_bits(self):
        token = SecretTokenGenerator().generate()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        generator = SecretTokenGenerator()
        assert len({generator.generate() for _ in range(200)}) == 200

    def test_rejects_weak_sizes(self):
        with pytest.raises(ValueError):
            SecretTokenGenerator(num_bytes=8)
