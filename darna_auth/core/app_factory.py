from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.auth_service import AuthService
from ..application.services.connection_auth import ConnectionAuthenticator
from ..domain.ports.persistence import CredentialStore, EmailSender
from ..infrastructure.persistence.sqlite import SQLiteCredentialStore
from ..presentation.api.errors import register_exception_handlers
from ..presentation.api.routers import auth as auth_router
from ..presentation.api.routers import two_factor as two_factor_router
from ..presentation.websocket import routes as websocket_routes
from ..services.email_service import EmailService
from ..services.password_hasher import PasswordHasher
from ..services.secret_tokens import SecretTokenGenerator
from ..services.token_service import TokenService
from ..services.two_factor import TwoFactorService

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Darna Authentication", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(auth_router.router)
    app.include_router(two_factor_router.router)
    app.include_router(websocket_routes.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"success": True, "environment": settings.environment}

    return app


def build_container(
    settings: Settings,
    store: Optional[CredentialStore] = None,
    email_service: Optional[EmailSender] = None,
) -> ApplicationContainer:
    store = store or SQLiteCredentialStore(settings.database_path)
    token_service = TokenService(
        secret_key=settings.jwt_secret,
        access_token_ttl=timedelta(minutes=settings.access_token_exp_minutes),
        refresh_token_ttl=timedelta(days=settings.refresh_token_exp_days),
        algorithm=settings.jwt_algorithm,
    )
    two_factor_service = TwoFactorService(
        issuer=settings.totp_issuer,
        valid_window=settings.totp_valid_window,
        backup_code_count=settings.backup_code_count,
    )
    email_service = email_service or EmailService(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_username=settings.smtp_username,
        smtp_password=settings.smtp_password,
        from_email=settings.smtp_from_email,
        base_url=settings.frontend_base_url,
        timeout=settings.email_timeout_seconds,
        verification_ttl=timedelta(hours=settings.email_verification_exp_hours),
        reset_ttl=timedelta(minutes=settings.password_reset_exp_minutes),
    )
    auth_service = AuthService(
        store=store,
        password_hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        token_service=token_service,
        secret_tokens=SecretTokenGenerator(),
        two_factor=two_factor_service,
        email_sender=email_service,
        production=settings.is_production,
        store_timeout=settings.store_timeout_seconds,
        email_timeout=settings.email_timeout_seconds,
        email_verification_ttl=timedelta(hours=settings.email_verification_exp_hours),
        password_reset_ttl=timedelta(minutes=settings.password_reset_exp_minutes),
        two_factor_setup_ttl=timedelta(minutes=settings.two_factor_setup_exp_minutes),
        password_min_length=settings.password_min_length,
    )
    return ApplicationContainer(
        settings=settings,
        store=store,
        token_service=token_service,
        two_factor_service=two_factor_service,
        email_service=email_service,
        auth_service=auth_service,
        connection_authenticator=ConnectionAuthenticator(auth_service),
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        container = getattr(app.state, "container", None) or build_container(settings)
        app.state.container = container  # type: ignore[attr-defined]
        logger.info(
            "Authentication service started (environment=%s, production=%s)",
            settings.environment,
            settings.is_production,
        )
        try:
            yield
        finally:
            close = getattr(container.store, "close", None)
            if close is not None:
                close()

    return lifespan
