"""API router for account authentication and profile management."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from ....application.services.auth_service import AuthService
from ....core.config import Settings
from ....core.dependencies import get_auth_service, get_settings
from ....domain.errors import TokenInvalid
from ....domain.models import LoginResult, User
from ...api.dependencies import get_current_user
from ...api.schemas.auth import (
    AckResponse,
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    RefreshResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TwoFactorLoginRequest,
    UpdateProfileRequest,
    UserEnvelope,
)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

REFRESH_COOKIE = "refreshToken"


@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    """Register a new account."""
    user = await auth_service.register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        account_type=payload.account_type,
        phone=payload.phone,
        company_info=payload.company_info.model_dump(exclude_none=True) if payload.company_info else None,
    )
    return UserEnvelope(message="Account created successfully.", user=user)


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    """Check credentials; returns tokens or a pending second-factor challenge."""
    result = await auth_service.login(payload.email, payload.password)
    return _login_response(result, response, settings)


@router.post("/2fa/login", response_model=LoginResponse)
async def login_second_factor(
    payload: TwoFactorLoginRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    """Complete a login that is waiting for a TOTP or backup code."""
    result = await auth_service.verify_2fa_challenge(payload.challenge_token, payload.code)
    return _login_response(result, response, settings)


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    request: Request,
    payload: Optional[RefreshTokenRequest] = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise TokenInvalid("Refresh token required.")
    result = await auth_service.refresh_token(token)
    return RefreshResponse(access_token=result.access_token, user=result.user)


@router.post("/logout", response_model=AckResponse)
async def logout(
    response: Response,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.logout(user.id)
    response.delete_cookie(REFRESH_COOKIE, httponly=True, samesite="strict")
    return AckResponse(message=result["message"])


@router.get("/verify-email", response_model=AckResponse)
async def verify_email(
    token: str = Query(default=""),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.verify_email(token)
    return AckResponse(message=result["message"])


@router.post("/resend-verification", response_model=AckResponse)
async def resend_verification(
    payload: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.resend_verification(payload.email)
    return AckResponse(message=result["message"])


@router.post("/request-password-reset", response_model=AckResponse)
async def request_password_reset(
    payload: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.request_password_reset(payload.email)
    return AckResponse(message=result["message"])


@router.post("/reset-password", response_model=AckResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.reset_password(payload.token, payload.new_password)
    return AckResponse(message=result["message"])


@router.post("/change-password", response_model=AckResponse)
async def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.change_password(user.id, payload.current_password, payload.new_password)
    return AckResponse(message=result["message"])


@router.get("/profile", response_model=UserEnvelope)
@router.get("/me", response_model=UserEnvelope)
async def get_profile(
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    return UserEnvelope(user=await auth_service.get_profile(user.id))


@router.put("/profile", response_model=UserEnvelope)
async def update_profile(
    payload: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    updated = await auth_service.update_profile(user.id, payload.model_dump(exclude_none=True))
    return UserEnvelope(message="Profile updated successfully.", user=updated)


@router.get("/check", response_model=UserEnvelope)
async def check_auth(
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserEnvelope:
    return UserEnvelope(message="Authenticated", user=await auth_service.check_auth(user.id))


def _login_response(result: LoginResult, response: Response, settings: Settings) -> LoginResponse:
    if result.pending_two_factor:
        return LoginResponse(
            message="Two-factor verification required.",
            pending_2fa=True,
            user_id=result.user_id,
            challenge_token=result.challenge_token,
        )

    response.set_cookie(
        REFRESH_COOKIE,
        result.refresh_token,
        max_age=settings.refresh_token_exp_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    return LoginResponse(
        message="Signed in successfully.",
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=result.user,
    )

