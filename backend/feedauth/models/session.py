"""Per-device login session model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from feedauth.core import clock
from feedauth.core.database import Base


class AuthSession(Base):
    """Server-side record of a logged-in device, independent of token lifetime."""

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(128), unique=True, nullable=False, index=True)
    refresh_token_jti = Column(String(64), nullable=True)
    device_info = Column(String(500), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(1000), nullable=True)
    last_activity = Column(DateTime, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    account = relationship("Account", back_populates="sessions")

    __table_args__ = (
        Index("idx_sessions_account_active", "account_id", "is_active"),
    )

    def __repr__(self):
        return f"<AuthSession(id={self.id}, account_id={self.account_id}, active={self.is_active})>"

    def is_valid(self) -> bool:
        if not self.is_active:
            return False
        return clock.utcnow() < clock.naive_utc(self.expires_at)

    def to_dict(self, current_session_id=None):
        """Descriptor without the opaque session secret"""
        return {
            "id": self.id,
            "device_info": self.device_info,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": bool(self.is_active),
            "is_current": current_session_id is not None and self.id == current_session_id,
        }
