"""Database models"""

from feedauth.models.account import Account
from feedauth.models.session import AuthSession
from feedauth.models.security import RevocationEntry

__all__ = ["Account", "AuthSession", "RevocationEntry"]
