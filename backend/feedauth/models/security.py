"""Security-related persistence models."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from feedauth.core.database import Base


class RevocationEntry(Base):
    """Revoked token identifier.

    expires_at is copied from the token's exp claim when the row is written
    and is never recomputed. Rows past it are inert and swept.
    """

    __tablename__ = "token_revocations"

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(128), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(String(100), nullable=False, default="user_logout")
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    account = relationship("Account", back_populates="revocations")

    __table_args__ = (
        Index("idx_token_revocations_token_expires", "token_id", "expires_at"),
        Index("idx_token_revocations_account_expires", "account_id", "expires_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "token_id": self.token_id,
            "reason": self.reason,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
