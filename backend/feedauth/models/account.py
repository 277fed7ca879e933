"""Account model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from feedauth.core import clock
from feedauth.core.database import Base


class Account(Base):
    """Identity record with credentials and security state"""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Null only for accounts created through an external identity provider
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), default="user", nullable=True)

    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    twofa_enabled = Column(Boolean, default=False, nullable=False)
    twofa_secret = Column(String(64), nullable=True)
    twofa_backup_codes = Column(JSON, nullable=True)

    external_id = Column(String(255), unique=True, nullable=True)

    reset_token_hash = Column(String(64), nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    sessions = relationship("AuthSession", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)
    revocations = relationship("RevocationEntry", back_populates="account", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index('idx_accounts_locked_until', 'locked_until'),
    )

    def __repr__(self):
        return f"<Account(id={self.id}, email='{self.email}')>"

    def is_locked(self) -> bool:
        if not self.locked_until:
            return False
        return clock.utcnow() < clock.naive_utc(self.locked_until)

    def to_dict(self):
        """Account-safe public profile"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "twofa_enabled": bool(self.twofa_enabled),
            "last_login": self.last_login.isoformat() if self.last_login else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
