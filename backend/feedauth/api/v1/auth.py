"""Authentication routes"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from feedauth.api.deps import (
    client_info,
    get_auth_context,
    login_rate_limit,
    require_fresh_auth,
)
from feedauth.config import settings
from feedauth.core.database import get_db
from feedauth.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from feedauth.schemas.response import APIResponse, LoginResponse
from feedauth.services.auth_gate import AuthContext, auth_gate
from feedauth.services.auth_service import auth_service
from feedauth.services.token_service import token_service

router = APIRouter()

REFRESH_HEADER = "X-Token-Refresh-Needed"


def _flag_refresh(response: Response, token: str) -> bool:
    should_refresh = token_service.should_refresh(token)
    if should_refresh:
        response.headers[REFRESH_HEADER] = "true"
    return should_refresh


@router.post(
    "/register",
    response_model=APIResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(login_rate_limit(scope="register"))],
)
def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """
    Register a new account and start its first session

    Returns:
        Account profile, token pair and session summary
    """
    result = auth_service.register(
        db, body.email, body.name, body.password, client_info(request, body.device_info)
    )
    return {"success": True, "message": "User registered successfully", "data": result.to_dict()}


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(login_rate_limit())])
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Login endpoint - password, then a 2FA code when the account has 2FA on

    A 2FA account without a code gets requires_2fa and no tokens.
    """
    result = auth_service.login(
        db,
        body.email,
        body.password,
        client_info(request, body.device_info),
        twofa_code=body.twofa_token,
    )
    if result.requires_2fa:
        return {
            "success": False,
            "requires_2fa": True,
            "message": "2FA token is required",
            "data": result.to_dict(),
        }
    return {"success": True, "message": "Login successful", "data": result.to_dict()}


@router.post(
    "/refresh",
    response_model=APIResponse,
    dependencies=[Depends(login_rate_limit(settings.REFRESH_RATE_LIMIT_PER_MINUTE, 60, scope="refresh"))],
)
def refresh(body: RefreshTokenRequest, db: Session = Depends(get_db)):
    pair = auth_service.refresh(db, body.refresh_token)
    return {"success": True, "message": "Token refreshed successfully", "data": {"auth": pair.to_dict()}}


@router.post("/logout", response_model=APIResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke the current token and end the session bound to it"""
    outcome = auth_gate.logout(db, context, body.refresh_token if body else None)
    return {"success": True, "message": "Logout successful", "data": outcome}


@router.get("/me", response_model=APIResponse)
def me(response: Response, context: AuthContext = Depends(get_auth_context)):
    _flag_refresh(response, context.token)
    return {
        "success": True,
        "data": {
            "user": context.account.to_dict(),
            "session_id": context.session_id,
        },
    }


@router.post("/change-password", response_model=APIResponse)
def change_password(
    body: ChangePasswordRequest,
    context: AuthContext = Depends(require_fresh_auth(settings.FRESH_AUTH_PASSWORD_CHANGE_SECONDS)),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, context.account, body.current_password, body.new_password)
    return {"success": True, "message": "Password changed successfully"}


@router.post(
    "/forgot-password",
    response_model=APIResponse,
    dependencies=[Depends(login_rate_limit(
        settings.PASSWORD_RESET_RATE_LIMIT_MAX_ATTEMPTS,
        settings.PASSWORD_RESET_RATE_LIMIT_WINDOW_SECONDS,
        scope="password-reset",
    ))],
)
def forgot_password(body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    """Always answers the same way so account existence is not revealed"""
    auth_service.request_password_reset(db, body.email)
    return {
        "success": True,
        "message": "If an account with that email exists, a password reset link has been sent.",
    }


@router.post(
    "/reset-password",
    response_model=APIResponse,
    dependencies=[Depends(login_rate_limit(scope="reset-password"))],
)
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    auth_service.reset_password(db, body.token, body.new_password)
    return {
        "success": True,
        "message": "Password reset successfully. You can now log in with your new password.",
    }


@router.get("/verify-token", response_model=APIResponse)
def verify_token(response: Response, context: AuthContext = Depends(get_auth_context)):
    should_refresh = _flag_refresh(response, context.token)
    remaining = token_service.time_remaining(context.claims)
    return {
        "success": True,
        "data": {
            "valid": True,
            "user": context.account.to_dict(),
            "token_info": {
                "time_remaining": int(remaining.total_seconds()),
                "should_refresh": should_refresh,
                "expires_at": token_service.expires_at(context.claims).isoformat(),
            },
        },
    }


@router.delete("/account", response_model=APIResponse)
def delete_account(
    context: AuthContext = Depends(require_fresh_auth(settings.FRESH_AUTH_ACCOUNT_DELETE_SECONDS)),
    db: Session = Depends(get_db),
):
    auth_service.delete_account(db, context.account)
    return {"success": True, "message": "Account deleted successfully"}
