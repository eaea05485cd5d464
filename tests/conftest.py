"""Shared pytest fixtures for the authentication core."""

import os
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("JWT_SECRET", "test-signing-secret-with-enough-length-1234")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")

from darna_auth.application.services.auth_service import AuthService
from darna_auth.core.app_factory import build_container, create_application
from darna_auth.core.config import Settings
from darna_auth.infrastructure.persistence.sqlite import SQLiteCredentialStore
from darna_auth.services.password_hasher import PasswordHasher
from darna_auth.services.secret_tokens import SecretTokenGenerator
from darna_auth.services.token_service import TokenService
from darna_auth.services.two_factor import TwoFactorService

TEST_SECRET = "test-signing-secret-with-enough-length-1234"


class MutableClock:
    """Test clock that starts at the real current time and can be moved forward."""

    def __init__(self) -> None:
        self.now = datetime.now(tz=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingEmailSender:
    """Email sender double that records messages and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.verification: List[Tuple[str, str]] = []
        self.password_reset: List[Tuple[str, str]] = []

    def send_verification_email(self, to_email: str, verification_token: str) -> bool:
        if self.fail:
            return False
        self.verification.append((to_email, verification_token))
        return True

    def send_password_reset_email(self, to_email: str, reset_token: str) -> bool:
        if self.fail:
            raise ConnectionError("SMTP relay unreachable")
        self.password_reset.append((to_email, reset_token))
        return True


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def store(tmp_path):
    store = SQLiteCredentialStore(tmp_path / "auth.db")
    yield store
    store.close()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_service():
    return TokenService(TEST_SECRET, access_token_ttl=timedelta(minutes=15))


@pytest.fixture
def two_factor():
    return TwoFactorService(issuer="Darna")


@pytest.fixture
def make_auth_service(store, hasher, token_service, two_factor, email_sender, clock):
    def _make(production: bool = False, **overrides) -> AuthService:
        return AuthService(
            store=overrides.pop("store", store),
            password_hasher=hasher,
            token_service=token_service,
            secret_tokens=SecretTokenGenerator(),
            two_factor=two_factor,
            email_sender=overrides.pop("email_sender", email_sender),
            production=production,
            clock=clock,
            **overrides,
        )

    return _make


@pytest.fixture
def auth_service(make_auth_service):
    return make_auth_service()


ALICE = {
    "email": "alice@example.com",
    "password": "Secret123",
    "first_name": "Alice",
    "last_name": "Martin",
}


@pytest.fixture
def client(store, email_sender):
    settings = Settings()
    app = create_application(settings)
    app.state.container = build_container(settings, store=store, email_service=email_sender)
    with TestClient(app) as test_client:
        yield test_client
