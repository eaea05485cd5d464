"""Signed access and refresh tokens."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from ..domain.errors import TokenExpired, TokenInvalid
from ..domain.models.token import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    TWO_FACTOR_CHALLENGE,
    TokenPair,
    TokenPayload,
)

logger = logging.getLogger(__name__)

_DEFAULT_SECRETS = {"change-me", "secret", "changeme"}


class TokenService:
    """Issues and verifies HMAC-signed JWTs carrying a ``TokenPayload``.

    Verification is stateless and side-effect free. Both token kinds carry a
    ``type`` claim so a refresh token is never accepted where an access token
    is expected, and the other way round.
    """

    def __init__(
        self,
        secret_key: str,
        access_token_ttl: timedelta = timedelta(minutes=60),
        refresh_token_ttl: timedelta = timedelta(days=30),
        algorithm: str = "HS256",
        challenge_ttl: timedelta = timedelta(minutes=5),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret_key or not secret_key.strip():
            raise RuntimeError("JWT_SECRET is not configured.")
        if secret_key in _DEFAULT_SECRETS:
            raise RuntimeError("JWT_SECRET uses a well-known default value. Configure a real secret.")
        if len(secret_key) < 32:
            logger.warning("JWT_SECRET is shorter than 32 characters. Use a longer secret in production.")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.challenge_ttl = challenge_ttl
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    def issue_access_token(self, payload: TokenPayload) -> str:
        return self._encode(payload, ACCESS_TOKEN, self.access_token_ttl)

    def issue_refresh_token(self, payload: TokenPayload) -> str:
        return self._encode(payload, REFRESH_TOKEN, self.refresh_token_ttl)

    def issue_two_factor_challenge(self, payload: TokenPayload) -> str:
        """Short-lived proof that the password step succeeded; only valid for the 2FA login step."""
        return self._encode(payload, TWO_FACTOR_CHALLENGE, self.challenge_ttl)

    def issue_pair(self, payload: TokenPayload) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(payload),
            refresh_token=self.issue_refresh_token(payload),
        )

    def verify(self, token: str, expected_type: str = ACCESS_TOKEN) -> TokenPayload:
        """
        Verify signature, expiry and token kind.

        Raises:
            TokenExpired: If the token is past its TTL
            TokenInvalid: On bad signature, malformed structure or wrong kind
        """
        if not token:
            raise TokenInvalid()
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except jwt.InvalidTokenError as exc:
            raise TokenInvalid() from exc

        if claims.get("type") != expected_type:
            raise TokenInvalid()
        try:
            return TokenPayload.from_claims(claims)
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalid() from exc

    def verify_refresh_token(self, token: str) -> TokenPayload:
        return self.verify(token, expected_type=REFRESH_TOKEN)

    def verify_two_factor_challenge(self, token: str) -> TokenPayload:
        return self.verify(token, expected_type=TWO_FACTOR_CHALLENGE)

    def _encode(self, payload: TokenPayload, token_type: str, ttl: timedelta) -> str:
        now = self._clock()
        claims = payload.to_claims()
        claims.update({"type": token_type, "iat": now, "exp": now + ttl})
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)
