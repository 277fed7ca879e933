"""Authentication request/response schemas"""

import re
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from feedauth.core.security import MAX_PASSWORD_BYTES

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SPECIAL_CHARACTERS = re.compile(r'[!@#$%^&*(),.?":{}|<>]')
BASE32_PATTERN = re.compile(r"^[A-Z2-7]+=*$")


def password_issues(password: str) -> List[str]:
    """Strength rules for new passwords; an empty list means acceptable"""
    issues = []
    if len(password) < 8:
        issues.append("Password must be at least 8 characters long")
    if len(password) > 128:
        issues.append("Password must be less than 128 characters long")
    elif len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        issues.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    if not re.search(r"[a-z]", password):
        issues.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        issues.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        issues.append("Password must contain at least one number")
    if not SPECIAL_CHARACTERS.search(password):
        issues.append("Password must contain at least one special character")
    return issues


def _clean_email(value: str) -> str:
    value = value.strip().lower()
    if len(value) > 255:
        raise ValueError("Email address is too long")
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please provide a valid email address")
    return value


def _strong_password(value: str) -> str:
    issues = password_issues(value)
    if issues:
        raise ValueError("; ".join(issues))
    return value


class RegisterRequest(BaseModel):
    """Registration schema"""
    name: str
    email: str
    password: str
    device_info: Optional[str] = Field(None, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip().replace("<", "").replace(">", "")
        if not 2 <= len(v) <= 100:
            raise ValueError("Name must be between 2 and 100 characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _clean_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _strong_password(v)


class LoginRequest(BaseModel):
    """Login schema - password rules are not revealed here"""
    email: str
    password: str = Field(..., min_length=1, max_length=128)
    twofa_token: Optional[str] = Field(None, max_length=32)
    device_info: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _clean_email(v)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v):
        return _strong_password(v)


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _clean_email(v)


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v):
        return _strong_password(v)


class TwoFactorEnableRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=32)
    secret: str = Field(..., min_length=16, max_length=64)

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, v):
        v = v.strip().upper()
        if not BASE32_PATTERN.match(v):
            raise ValueError("2FA secret must be base32 encoded")
        return v


class TwoFactorDisableRequest(BaseModel):
    password: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1, max_length=32)


class TwoFactorVerifyRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=32)


class RevokeRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=100)
