"""Token revocation and inspection routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from feedauth.api.deps import get_auth_context, get_current_admin
from feedauth.core.database import get_db
from feedauth.schemas.auth import RevokeRequest
from feedauth.schemas.response import APIResponse
from feedauth.services.auth_gate import AuthContext
from feedauth.services.revocation_service import revocation_ledger
from feedauth.services.session_service import session_registry
from feedauth.services.token_service import token_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/revoke/current", response_model=APIResponse)
def revoke_current(
    body: Optional[RevokeRequest] = None,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    reason = (body.reason if body else None) or "user_requested"
    revocation_ledger.revoke(db, context.claims, reason=reason)
    if context.session_id is not None:
        session_registry.invalidate(db, context.session_id)
    return {"success": True, "message": "Token revoked successfully"}


@router.post("/revoke/all", response_model=APIResponse)
def revoke_all(
    body: Optional[RevokeRequest] = None,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Revoke every session of the caller, including the current one"""
    reason = (body.reason if body else None) or "user_requested_all"
    revocation_ledger.revoke(db, context.claims, reason=reason)
    revoked_count = revocation_ledger.revoke_all_for_account(db, context.account_id, reason=reason)
    return {
        "success": True,
        "message": f"Successfully revoked {revoked_count} sessions",
        "data": {"revoked_count": revoked_count},
    }


@router.get("/blacklist/mine", response_model=APIResponse)
def my_revocations(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    entries = revocation_ledger.entries_for_account(db, context.account_id)
    return {"success": True, "data": {"entries": [e.to_dict() for e in entries]}}


@router.get("/blacklist/stats", response_model=APIResponse)
def revocation_stats(context: AuthContext = Depends(get_current_admin), db: Session = Depends(get_db)):
    return {"success": True, "data": revocation_ledger.statistics(db)}


@router.post("/cleanup", response_model=APIResponse)
def cleanup(context: AuthContext = Depends(get_current_admin), db: Session = Depends(get_db)):
    cleaned = revocation_ledger.sweep_expired(db)
    logger.info(f"Admin {context.account_id} cleaned up {cleaned} revocation entries")
    return {
        "success": True,
        "message": f"Cleaned up {cleaned} expired entries",
        "data": {"cleaned_count": cleaned},
    }


@router.get("/info", response_model=APIResponse)
def token_info(context: AuthContext = Depends(get_auth_context)):
    claims = context.claims
    return {
        "success": True,
        "data": {
            "user_id": context.account_id,
            "token_payload": {
                key: claims.get(key) for key in ("sub", "email", "iat", "exp", "iss", "aud", "sid")
            },
            "session_id": context.session_id,
            "expires_at": token_service.expires_at(claims).isoformat(),
        },
    }
