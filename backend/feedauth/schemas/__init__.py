"""Pydantic schemas for API validation"""

from feedauth.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    TwoFactorEnableRequest,
    TwoFactorDisableRequest,
    TwoFactorVerifyRequest,
    RevokeRequest,
)
from feedauth.schemas.response import APIResponse, ErrorResponse, HealthResponse, LoginResponse

__all__ = [
    "RegisterRequest", "LoginRequest", "RefreshTokenRequest", "LogoutRequest",
    "ChangePasswordRequest", "ForgotPasswordRequest", "ResetPasswordRequest",
    "TwoFactorEnableRequest", "TwoFactorDisableRequest", "TwoFactorVerifyRequest",
    "RevokeRequest",
    "APIResponse", "ErrorResponse", "HealthResponse", "LoginResponse",
]
