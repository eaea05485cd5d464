from fastapi import Depends
from fastapi.requests import HTTPConnection

from ..application.services.auth_service import AuthService
from ..application.services.connection_auth import ConnectionAuthenticator
from .config import Settings
from .container import ApplicationContainer


def get_container(connection: HTTPConnection) -> ApplicationContainer:
    """Container for both HTTP requests and websocket handshakes."""
    container = getattr(connection.app.state, "container", None)
    if container is None:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_auth_service(container: ApplicationContainer = Depends(get_container)) -> AuthService:
    return container.auth_service


def get_connection_authenticator(
    container: ApplicationContainer = Depends(get_container),
) -> ConnectionAuthenticator:
    return container.connection_authenticator
