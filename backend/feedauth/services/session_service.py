"""Session registry - per-device login sessions."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from feedauth.config import Settings, settings as default_settings
from feedauth.core import clock
from feedauth.core.security import generate_secure_token
from feedauth.models.session import AuthSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Create, look up and invalidate session rows.

    Invalidated rows are kept for audit until sweep_expired removes them.
    """

    def __init__(self, config: Settings = default_settings) -> None:
        self.settings = config

    def create(
        self,
        db: Session,
        account_id: int,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        *,
        refresh_token_jti: Optional[str] = None,
    ) -> AuthSession:
        now = clock.utcnow()
        record = AuthSession(
            account_id=account_id,
            session_token=generate_secure_token(32),
            refresh_token_jti=refresh_token_jti,
            device_info=device_info,
            ip_address=ip_address,
            user_agent=user_agent,
            last_activity=now,
            expires_at=now + timedelta(days=self.settings.SESSION_EXPIRE_DAYS),
            is_active=True,
        )
        db.add(record)
        db.commit()
        db.refresh(record)

        logger.info(f"Session {record.id} created for account {account_id}")
        return record

    def get(self, db: Session, session_id: int) -> Optional[AuthSession]:
        return db.get(AuthSession, session_id)

    @staticmethod
    def is_valid(record: Optional[AuthSession]) -> bool:
        return record is not None and record.is_valid()

    def find_active(self, db: Session, account_id: int) -> List[AuthSession]:
        """Currently valid sessions, most recently active first."""
        now = clock.utcnow()
        return (
            db.query(AuthSession)
            .filter(
                AuthSession.account_id == account_id,
                AuthSession.is_active == True,  # noqa: E712
                AuthSession.expires_at > now,
            )
            .order_by(AuthSession.last_activity.desc(), AuthSession.id.desc())
            .all()
        )

    def link_refresh_token(self, db: Session, record: AuthSession, refresh_jti: str) -> AuthSession:
        record.refresh_token_jti = refresh_jti
        db.commit()
        db.refresh(record)
        return record

    def touch(self, db: Session, session_id: int) -> None:
        db.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id)
            .values(last_activity=clock.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()

    def invalidate(self, db: Session, session_id: int) -> bool:
        """Deactivate a session. Idempotent; returns whether a row was active."""
        result = db.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.is_active == True)  # noqa: E712
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        changed = result.rowcount > 0
        if changed:
            logger.info(f"Session {session_id} deactivated")
        return changed

    def invalidate_all(self, db: Session, account_id: int) -> int:
        result = db.execute(
            update(AuthSession)
            .where(AuthSession.account_id == account_id, AuthSession.is_active == True)  # noqa: E712
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        count = result.rowcount or 0
        logger.info(f"Deactivated {count} sessions for account {account_id}")
        return count

    def invalidate_others(self, db: Session, account_id: int, keep_session_id: Optional[int]) -> int:
        """Log out every other device, keeping the caller's session."""
        query = (
            update(AuthSession)
            .where(AuthSession.account_id == account_id, AuthSession.is_active == True)  # noqa: E712
        )
        if keep_session_id is not None:
            query = query.where(AuthSession.id != keep_session_id)
        result = db.execute(
            query.values(is_active=False).execution_options(synchronize_session=False)
        )
        db.commit()
        count = result.rowcount or 0
        logger.info(f"Deactivated {count} other sessions for account {account_id}")
        return count

    def sweep_expired(self, db: Session) -> int:
        """Delete rows that are inactive or past expiry. Safe to repeat."""
        count = (
            db.query(AuthSession)
            .filter(or_(AuthSession.is_active == False, AuthSession.expires_at <= clock.utcnow()))  # noqa: E712
            .delete(synchronize_session=False)
        )
        db.commit()
        if count > 0:
            logger.info(f"Cleaned up {count} expired sessions")
        return count

    def summary(self, db: Session, account_id: int) -> dict:
        sessions = self.find_active(db, account_id)
        return {
            "total_sessions": len(sessions),
            "current_devices": [
                {
                    "id": s.id,
                    "device_info": s.device_info,
                    "ip_address": s.ip_address,
                    "last_activity": s.last_activity.isoformat() if s.last_activity else None,
                    "created_at": s.created_at.isoformat() if s.created_at else None,
                }
                for s in sessions
            ],
        }


session_registry = SessionRegistry()
