"""Pydantic schemas for authentication API endpoints."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class CompanyInfo(BaseModel):
    company_name: Optional[str] = None
    siret: Optional[str] = None
    address: Optional[Dict[str, Any]] = None


class RegisterRequest(BaseModel):
    """Request schema for user registration."""

    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    account_type: Literal["individual", "business"] = "individual"
    company_info: Optional[CompanyInfo] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TwoFactorLoginRequest(BaseModel):
    """Second login step: the challenge token from the login response plus a code."""

    challenge_token: str
    code: str


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    company_info: Optional[CompanyInfo] = None


class UserStats(BaseModel):
    last_login: Optional[datetime] = None
    login_count: int = 0
    failed_login_count: int = 0


class UserResponse(BaseModel):
    """Safe view of a user account."""

    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    phone: Optional[str] = None
    account_type: str
    role: str
    company_info: Optional[Dict[str, Any]] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    email_verified: bool
    two_factor_enabled: bool
    is_active: bool
    is_blocked: bool
    blocked_reason: Optional[str] = None
    stats: UserStats
    created_at: datetime
    updated_at: datetime


class UserEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: UserResponse


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    pending_2fa: bool = False
    user_id: Optional[int] = None
    challenge_token: Optional[str] = None
    user: Optional[UserResponse] = None


class RefreshResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class AckResponse(BaseModel):
    success: bool = True
    message: str
