"""Two-factor authentication routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from feedauth.api.deps import get_auth_context
from feedauth.core.database import get_db
from feedauth.core.exceptions import AuthenticationError, BusinessLogicError
from feedauth.schemas.auth import (
    TwoFactorDisableRequest,
    TwoFactorEnableRequest,
    TwoFactorVerifyRequest,
)
from feedauth.schemas.response import APIResponse
from feedauth.services.auth_gate import AuthContext
from feedauth.services.twofa_service import twofa_verifier

router = APIRouter()


@router.get("/setup", response_model=APIResponse)
def setup(context: AuthContext = Depends(get_auth_context)):
    """Generate a secret and QR code; nothing is stored until /enable"""
    setup_data = twofa_verifier.begin_setup(context.account)
    return {
        "success": True,
        "message": "2FA setup data generated",
        "data": {
            "secret": setup_data.secret,
            "otpauth_url": setup_data.qr_payload,
            "qr_code": setup_data.qr_code,
            "instructions": "Scan the QR code with your authenticator app, then verify with a code to enable 2FA",
        },
    }


@router.post("/enable", response_model=APIResponse)
def enable(
    body: TwoFactorEnableRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    backup_codes = twofa_verifier.enable(db, context.account, body.secret, body.token)
    return {
        "success": True,
        "message": "2FA enabled successfully",
        "data": {
            "backup_codes": backup_codes,
            "warning": "Save these backup codes in a safe place. They will not be shown again.",
        },
    }


@router.post("/disable", response_model=APIResponse)
def disable(
    body: TwoFactorDisableRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    twofa_verifier.disable(db, context.account, body.password, body.token)
    return {"success": True, "message": "2FA disabled successfully"}


@router.post("/verify", response_model=APIResponse)
def verify(
    body: TwoFactorVerifyRequest,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    if not context.account.twofa_enabled:
        raise BusinessLogicError("2FA is not enabled for this account")
    if not twofa_verifier.verify(db, context.account, body.token):
        raise AuthenticationError("Invalid 2FA token")
    return {"success": True, "message": "2FA verification successful"}


@router.get("/status", response_model=APIResponse)
def twofa_status(context: AuthContext = Depends(get_auth_context)):
    return {"success": True, "data": twofa_verifier.status(context.account)}
