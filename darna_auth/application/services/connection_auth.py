from __future__ import annotations

import logging
from typing import Optional

from ...domain.errors import TokenInvalid
from ...domain.models import ConnectionIdentity
from .auth_service import AuthService

logger = logging.getLogger(__name__)


class ConnectionAuthenticator:
    """Authenticates real-time connections with the same checks as HTTP bearer auth."""

    def __init__(self, auth_service: AuthService) -> None:
        self._auth = auth_service

    async def authenticate(self, token: Optional[str]) -> ConnectionIdentity:
        if not token:
            raise TokenInvalid("Token required.")
        user = await self._auth.authenticate_token(token)
        logger.debug("Real-time connection authenticated for user %s", user.id)
        return ConnectionIdentity(user_id=user.id, name=user.full_name, email=user.email)
