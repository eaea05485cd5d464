from fastapi import APIRouter, Depends

from ....application.services.auth_service import AuthService
from ....core.dependencies import get_auth_service
from ....domain.models import User
from ...api.dependencies import get_current_user
from ...api.schemas.auth import AckResponse
from ...api.schemas.two_factor import (
    CodePayload,
    PasswordPayload,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)

router = APIRouter(prefix="/api/auth/2fa", tags=["Two-Factor Authentication"])


@router.get("/status", response_model=TwoFactorStatusResponse)
async def two_factor_status(
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> TwoFactorStatusResponse:
    status = await auth_service.get_2fa_status(user.id)
    return TwoFactorStatusResponse(
        two_factor_enabled=status.enabled,
        backup_codes_count=status.backup_codes_count,
        backup_codes_remaining=status.backup_codes_remaining,
        setup_pending=status.setup_pending,
    )


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def two_factor_setup(
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> TwoFactorSetupResponse:
    setup = await auth_service.generate_2fa_setup(user.id)
    return TwoFactorSetupResponse(
        secret=setup.secret,
        provisioning_uri=setup.provisioning_uri,
        qr_code_data_url=setup.qr_code_data_url,
        backup_codes=setup.backup_codes,
    )


@router.post("/enable", response_model=AckResponse)
async def two_factor_enable(
    payload: CodePayload,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.enable_2fa(user.id, payload.code)
    return AckResponse(message=result["message"])


@router.post("/disable", response_model=AckResponse)
async def two_factor_disable(
    payload: PasswordPayload,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.disable_2fa(user.id, payload.password)
    return AckResponse(message=result["message"])


@router.post("/verify", response_model=AckResponse)
async def two_factor_verify(
    payload: CodePayload,
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> AckResponse:
    result = await auth_service.verify_2fa_code(user.id, payload.code)
    return AckResponse(message=result["message"])
