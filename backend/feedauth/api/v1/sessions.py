"""Session management routes"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from feedauth.api.deps import get_auth_context
from feedauth.core.database import get_db
from feedauth.core.exceptions import BusinessLogicError, ResourceNotFoundError
from feedauth.schemas.response import APIResponse
from feedauth.services.auth_gate import AuthContext
from feedauth.services.session_service import session_registry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=APIResponse)
def list_sessions(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Active sessions of the caller; the opaque session secret is never returned"""
    sessions = session_registry.find_active(db, context.account_id)
    return {
        "success": True,
        "data": {"sessions": [s.to_dict(context.session_id) for s in sessions]},
    }


@router.get("/summary", response_model=APIResponse)
def session_summary(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return {"success": True, "data": session_registry.summary(db, context.account_id)}


@router.delete("/others/all", response_model=APIResponse)
def terminate_other_sessions(
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    count = session_registry.invalidate_others(db, context.account_id, context.session_id)
    logger.info(f"All other sessions terminated by account {context.account_id}")
    return {
        "success": True,
        "message": "All other sessions terminated successfully",
        "data": {"terminated": count},
    }


@router.delete("/{session_id}", response_model=APIResponse)
def terminate_session(
    session_id: int,
    context: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    record = session_registry.get(db, session_id)
    if record is None or record.account_id != context.account_id:
        raise ResourceNotFoundError("Session")
    if session_id == context.session_id:
        raise BusinessLogicError("Cannot terminate current session. Use logout instead.")

    session_registry.invalidate(db, session_id)
    logger.info(f"Session {session_id} terminated by account {context.account_id}")
    return {"success": True, "message": "Session terminated successfully"}


@router.post("/activity", response_model=APIResponse)
def update_activity(context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    if context.session_id is not None:
        session_registry.touch(db, context.session_id)
    return {"success": True, "message": "Session activity updated"}
