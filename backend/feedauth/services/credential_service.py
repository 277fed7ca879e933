"""Credential guard - password verification, hashing and brute-force lockout"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedauth.config import Settings, settings as default_settings
from feedauth.core import clock
from feedauth.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    DuplicateEmailError,
    InvalidCredentialsError,
    ResourceNotFoundError,
    ValidationError,
)
from feedauth.core.security import (
    digest_secret,
    generate_secure_token,
    get_password_hash,
    verify_password,
)
from feedauth.models.account import Account

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    if not isinstance(email, str):
        raise ValidationError("Email is required")
    return email.strip().lower()


class CredentialGuard:
    """Verifies passwords and tracks failed attempts and lockout windows."""

    def __init__(self, config: Settings = default_settings) -> None:
        self.settings = config

    def hash_password(self, password: str) -> str:
        return get_password_hash(password, rounds=self.settings.BCRYPT_ROUNDS)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return verify_password(password, password_hash)

    def get_by_id(self, db: Session, account_id: int) -> Optional[Account]:
        return db.get(Account, account_id)

    def get_by_email(self, db: Session, email: str) -> Optional[Account]:
        return db.query(Account).filter(Account.email == normalize_email(email)).first()

    def is_locked(self, account: Account) -> bool:
        return account.is_locked()

    def create_account(
        self,
        db: Session,
        email: str,
        name: str,
        password: Optional[str],
        *,
        external_id: Optional[str] = None,
        role: str = "user",
    ) -> Account:
        """
        Create new account

        Args:
            db: Database session
            email: Email address, stored lowercased
            name: Display name
            password: Plain text password; None only for external identities
            external_id: External identity id (OAuth subject)

        Returns:
            Created account
        """
        email = normalize_email(email)
        if not email or not name:
            raise ValidationError("Name, email, and password are required")
        if password is None and external_id is None:
            raise ValidationError("Name, email, and password are required")

        if self.get_by_email(db, email):
            raise DuplicateEmailError()

        account = Account(
            email=email,
            name=name.strip(),
            password_hash=self.hash_password(password) if password is not None else None,
            external_id=external_id,
            role=role,
            failed_login_attempts=0,
            twofa_enabled=False,
        )
        db.add(account)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateEmailError()
        db.refresh(account)

        logger.info(f"Account created: {account.email} (id={account.id})")
        return account

    def authenticate(self, db: Session, email: str, password: str) -> Account:
        """
        Authenticate account with lockout protection

        Unknown email and wrong password raise the same error. A locked
        account is rejected before the password is checked.

        Args:
            db: Database session
            email: Email address (case-insensitive)
            password: Password

        Returns:
            Authenticated account
        """
        account = self.get_by_email(db, email)
        if not account:
            raise InvalidCredentialsError()

        now = clock.utcnow()

        if account.is_locked():
            logger.warning(f"Login attempt on locked account: {account.email}")
            raise AccountLockedError(clock.naive_utc(account.locked_until).isoformat())

        if account.locked_until is not None:
            self._clear_expired_lock(db, account, now)

        if not account.password_hash:
            # External identity without a local password
            raise InvalidCredentialsError()

        if not self.verify_password(password, account.password_hash):
            self._record_failure(db, account, now)

        account.failed_login_attempts = 0
        account.locked_until = None
        account.last_login = now
        db.commit()
        db.refresh(account)

        logger.info(f"Account authenticated: {account.email}")
        return account

    def _clear_expired_lock(self, db: Session, account: Account, now) -> None:
        """An elapsed lock starts a fresh failure window."""
        db.execute(
            update(Account)
            .where(Account.id == account.id, Account.locked_until <= now)
            .values(failed_login_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(account)

    def _record_failure(self, db: Session, account: Account, now) -> None:
        """Count a wrong password and lock at the threshold. Always raises."""
        # Atomic increment so concurrent failures are never undercounted
        db.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(failed_login_attempts=Account.failed_login_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        attempts = db.query(Account.failed_login_attempts).filter(Account.id == account.id).scalar()

        if attempts >= self.settings.MAX_LOGIN_ATTEMPTS:
            locked_until = now + timedelta(minutes=self.settings.ACCOUNT_LOCK_MINUTES)
            db.execute(
                update(Account)
                .where(Account.id == account.id)
                .where(or_(Account.locked_until.is_(None), Account.locked_until <= now))
                .values(locked_until=locked_until)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            db.refresh(account)
            logger.warning(f"Account locked after {attempts} failed attempts: {account.email}")
            raise AccountLockedError(clock.naive_utc(account.locked_until).isoformat())

        db.commit()
        db.refresh(account)
        raise InvalidCredentialsError()

    def change_password(self, db: Session, account: Account, current_password: str, new_password: str) -> Account:
        if not account.password_hash or not self.verify_password(current_password, account.password_hash):
            raise AuthenticationError("Current password is incorrect")

        account.password_hash = self.hash_password(new_password)
        db.commit()
        db.refresh(account)

        logger.info(f"Password changed for account: {account.email}")
        return account

    def issue_reset_token(self, db: Session, account: Account) -> str:
        """Generate a password reset token. Only its digest is persisted."""
        token = generate_secure_token()
        account.reset_token_hash = digest_secret(token)
        account.reset_token_expires = clock.utcnow() + timedelta(
            minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES
        )
        db.commit()

        logger.info(f"Password reset token generated for account: {account.email}")
        return token

    def reset_password(self, db: Session, token: str, new_password: str) -> Account:
        if not token:
            raise ValidationError("Invalid reset token")

        account = db.query(Account).filter(Account.reset_token_hash == digest_secret(token)).first()
        if not account:
            raise ValidationError("Invalid reset token")

        if not account.reset_token_expires or clock.utcnow() > clock.naive_utc(account.reset_token_expires):
            raise ValidationError("Reset token has expired")

        account.password_hash = self.hash_password(new_password)
        account.reset_token_hash = None
        account.reset_token_expires = None
        account.failed_login_attempts = 0
        account.locked_until = None
        db.commit()
        db.refresh(account)

        logger.info(f"Password reset for account: {account.email}")
        return account

    def delete_account(self, db: Session, account_id: int) -> bool:
        """Delete account; sessions and revocation entries cascade."""
        account = db.get(Account, account_id)
        if not account:
            raise ResourceNotFoundError("Account")

        email = account.email
        db.delete(account)
        db.commit()

        logger.info(f"Account deleted: {email}")
        return True


# Singleton instance
credential_guard = CredentialGuard()
