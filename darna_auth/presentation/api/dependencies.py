from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.auth_service import AuthService
from ...core.dependencies import get_auth_service
from ...domain.errors import TokenInvalid
from ...domain.models import User

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer access token to the live, active user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise TokenInvalid("Authorization token required.")
    return await auth_service.authenticate_token(credentials.credentials)
