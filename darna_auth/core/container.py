from dataclasses import dataclass

from ..application.services.auth_service import AuthService
from ..application.services.connection_auth import ConnectionAuthenticator
from ..domain.ports.persistence import CredentialStore, EmailSender
from ..services.token_service import TokenService
from ..services.two_factor import TwoFactorService
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    store: CredentialStore
    token_service: TokenService
    two_factor_service: TwoFactorService
    email_service: EmailSender
    auth_service: AuthService
    connection_authenticator: ConnectionAuthenticator
