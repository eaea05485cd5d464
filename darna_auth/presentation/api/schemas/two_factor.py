from typing import List

from pydantic import BaseModel


class CodePayload(BaseModel):
    code: str


class PasswordPayload(BaseModel):
    password: str


class TwoFactorSetupResponse(BaseModel):
    success: bool = True
    message: str = "Scan the QR code with your authenticator app, then confirm with a code."
    secret: str
    provisioning_uri: str
    qr_code_data_url: str
    backup_codes: List[str]


class TwoFactorStatusResponse(BaseModel):
    success: bool = True
    two_factor_enabled: bool
    backup_codes_count: int
    backup_codes_remaining: int
    setup_pending: bool
