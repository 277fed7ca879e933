"""Revocation ledger for explicitly invalidated token identifiers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedauth.core import clock
from feedauth.core.exceptions import TokenInvalidError
from feedauth.models.security import RevocationEntry
from feedauth.models.session import AuthSession

logger = logging.getLogger(__name__)


def session_token_id(session_id: int) -> str:
    return f"session:{session_id}"


class RevocationLedger:
    """Record and answer 'is this token identifier revoked'."""

    @staticmethod
    def revoke(db: Session, claims: Dict[str, Any], reason: str = "user_logout") -> RevocationEntry:
        token_id = claims.get("jti")
        account_id = claims.get("sub")
        if not token_id or not account_id or not claims.get("exp"):
            raise TokenInvalidError("Token cannot be revoked")

        entry = RevocationEntry(
            token_id=token_id,
            account_id=int(account_id),
            reason=reason,
            expires_at=clock.from_timestamp(int(claims["exp"])),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)

        logger.info(f"Token revoked: {token_id} for account {account_id} ({reason})")
        return entry

    @staticmethod
    def is_revoked(db: Session, token_id: str) -> bool:
        """
        True iff a non-expired entry exists for the identifier.

        A storage error is logged and answered with False so a transient
        outage does not block every request.
        """
        try:
            row = (
                db.query(RevocationEntry.id)
                .filter(
                    RevocationEntry.token_id == token_id,
                    RevocationEntry.expires_at > clock.utcnow(),
                )
                .first()
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Revocation check failed for token {token_id}, allowing request: {exc}")
            return False
        return row is not None

    @staticmethod
    def revoke_all_for_account(db: Session, account_id: int, reason: str = "security_action") -> int:
        """Revoke every active session of the account and deactivate them."""
        now = clock.utcnow()
        sessions = (
            db.query(AuthSession)
            .filter(
                AuthSession.account_id == account_id,
                AuthSession.is_active == True,  # noqa: E712
                AuthSession.expires_at > now,
            )
            .all()
        )
        for record in sessions:
            db.add(RevocationEntry(
                token_id=session_token_id(record.id),
                account_id=account_id,
                reason=reason,
                expires_at=record.expires_at,
            ))
            if record.refresh_token_jti:
                db.add(RevocationEntry(
                    token_id=record.refresh_token_jti,
                    account_id=account_id,
                    reason=reason,
                    expires_at=record.expires_at,
                ))
            record.is_active = False
        db.commit()

        logger.info(f"Revoked {len(sessions)} sessions for account {account_id} ({reason})")
        return len(sessions)

    @staticmethod
    def sweep_expired(db: Session) -> int:
        count = (
            db.query(RevocationEntry)
            .filter(RevocationEntry.expires_at <= clock.utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
        if count > 0:
            logger.info(f"Cleaned up {count} expired revocation entries")
        return count

    @staticmethod
    def entries_for_account(db: Session, account_id: int, limit: int = 50) -> List[RevocationEntry]:
        return (
            db.query(RevocationEntry)
            .filter(RevocationEntry.account_id == account_id)
            .order_by(RevocationEntry.created_at.desc(), RevocationEntry.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def statistics(db: Session) -> Dict[str, int]:
        now = clock.utcnow()
        total, active = db.query(
            func.count(RevocationEntry.id),
            func.coalesce(func.sum(case((RevocationEntry.expires_at > now, 1), else_=0)), 0),
        ).one()
        total = int(total or 0)
        active = int(active or 0)
        return {"total": total, "active": active, "expired": total - active}


revocation_ledger = RevocationLedger()
