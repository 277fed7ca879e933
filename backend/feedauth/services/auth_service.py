"""Auth service - composes credentials, sessions, tokens and 2FA into the public flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from feedauth.core import clock
from feedauth.core.exceptions import AccountLockedError, AuthenticationError, TokenInvalidError
from feedauth.models.account import Account
from feedauth.models.session import AuthSession
from feedauth.services.credential_service import CredentialGuard, credential_guard, normalize_email
from feedauth.services.email_service import EmailNotifier, email_notifier, notify_safely
from feedauth.services.revocation_service import RevocationLedger, revocation_ledger
from feedauth.services.session_service import SessionRegistry, session_registry
from feedauth.services.token_service import TokenKind, TokenPair, TokenService, token_service
from feedauth.services.twofa_service import TwoFactorVerifier, twofa_verifier

logger = logging.getLogger(__name__)


@dataclass
class ClientInfo:
    device_info: str = "Unknown Device"
    ip_address: str = "Unknown IP"
    user_agent: str = "Unknown User Agent"


@dataclass
class LoginResult:
    account: Account
    tokens: Optional[TokenPair] = None
    session: Optional[AuthSession] = None
    requires_2fa: bool = False

    @property
    def account_id(self) -> int:
        return self.account.id

    def to_dict(self) -> Dict[str, Any]:
        if self.requires_2fa:
            return {"requires_2fa": True, "user_id": self.account.id}
        return {
            "user": self.account.to_dict(),
            "auth": self.tokens.to_dict() if self.tokens else None,
            "session": {
                "id": self.session.id,
                "device_info": self.session.device_info,
                "expires_at": self.session.expires_at.isoformat() if self.session.expires_at else None,
            } if self.session else None,
        }


class AuthService:
    """Registration, login, refresh and password lifecycle."""

    def __init__(
        self,
        guard: CredentialGuard = credential_guard,
        tokens: TokenService = token_service,
        sessions: SessionRegistry = session_registry,
        ledger: RevocationLedger = revocation_ledger,
        twofa: TwoFactorVerifier = twofa_verifier,
        notifier: EmailNotifier = email_notifier,
    ) -> None:
        self.guard = guard
        self.tokens = tokens
        self.sessions = sessions
        self.ledger = ledger
        self.twofa = twofa
        self.notifier = notifier

    def _start_session(self, db: Session, account: Account, client: Optional[ClientInfo]) -> LoginResult:
        client = client or ClientInfo()
        record = self.sessions.create(
            db,
            account.id,
            device_info=client.device_info,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        pair = self.tokens.issue_pair(account, record.id)
        self.sessions.link_refresh_token(db, record, pair.refresh_jti)
        return LoginResult(account=account, tokens=pair, session=record)

    def register(
        self,
        db: Session,
        email: str,
        name: str,
        password: str,
        client: Optional[ClientInfo] = None,
    ) -> LoginResult:
        account = self.guard.create_account(db, email, name, password)
        result = self._start_session(db, account, client)

        notify_safely("welcome", self.notifier.send_welcome_email, account.email, account.name)
        logger.info(f"User registered successfully: {account.email}")
        return result

    def login(
        self,
        db: Session,
        email: str,
        password: str,
        client: Optional[ClientInfo] = None,
        twofa_code: Optional[str] = None,
    ) -> LoginResult:
        """
        Password login, with a second step when 2FA is enabled

        Without a code a 2FA account gets requires_2fa and no session or
        tokens; the client repeats the call with the code.
        """
        account = self.guard.authenticate(db, email, password)

        if account.twofa_enabled:
            if not twofa_code:
                logger.info(f"2FA required for login: {account.email}")
                return LoginResult(account=account, requires_2fa=True)
            if not self.twofa.verify(db, account, twofa_code):
                logger.warning(f"Invalid 2FA code on login: {account.email}")
                raise AuthenticationError("Invalid 2FA code")

        result = self._start_session(db, account, client)
        logger.info(f"User logged in successfully: {account.email}")
        return result

    def login_external(
        self,
        db: Session,
        email: str,
        name: str,
        external_id: str,
        client: Optional[ClientInfo] = None,
    ) -> LoginResult:
        """Find or create an account for a verified external identity and log it in."""
        account = db.query(Account).filter(Account.external_id == external_id).first()
        if account is None:
            account = self.guard.get_by_email(db, email)
            if account is None:
                account = self.guard.create_account(db, email, name, None, external_id=external_id)
                notify_safely("welcome", self.notifier.send_welcome_email, account.email, account.name)
            elif not account.external_id:
                account.external_id = external_id
                db.commit()
                db.refresh(account)
                logger.info(f"External identity linked to account: {account.email}")

        if account.is_locked():
            raise AccountLockedError(clock.naive_utc(account.locked_until).isoformat())

        account.last_login = clock.utcnow()
        db.commit()

        result = self._start_session(db, account, client)
        logger.info(f"External login successful: {account.email}")
        return result

    def refresh(self, db: Session, refresh_token: str) -> TokenPair:
        """
        New access token from a refresh token

        The refresh token must not be revoked, its bound session must still
        be valid and the account must exist and be unlocked.
        """
        claims = self.tokens.verify(refresh_token, TokenKind.REFRESH)

        if self.ledger.is_revoked(db, claims["jti"]):
            logger.warning(f"Refresh with revoked token {claims['jti']}")
            raise TokenInvalidError("Token has been revoked")

        account = self.guard.get_by_id(db, int(claims["sub"]))
        if account is None:
            raise TokenInvalidError("User not found")

        sid = claims.get("sid")
        if sid is not None:
            record = self.sessions.get(db, sid)
            if not self.sessions.is_valid(record) or record.account_id != account.id:
                logger.warning(f"Refresh on invalid session {sid} for account {account.id}")
                raise TokenInvalidError("Session is no longer valid")

        if account.is_locked():
            raise AuthenticationError("Account is temporarily locked")

        return self.tokens.refresh(refresh_token)

    def change_password(self, db: Session, account: Account, current_password: str, new_password: str) -> Account:
        return self.guard.change_password(db, account, current_password, new_password)

    def request_password_reset(self, db: Session, email: str) -> None:
        """Issue a reset token and email it. Silent about whether the email exists."""
        account = self.guard.get_by_email(db, email)
        if account is None:
            logger.warning(f"Password reset requested for unknown email: {normalize_email(email)}")
            return

        token = self.guard.issue_reset_token(db, account)
        notify_safely(
            "password reset",
            self.notifier.send_password_reset_email,
            account.email,
            token,
            account.name,
        )

    def reset_password(self, db: Session, token: str, new_password: str) -> Account:
        account = self.guard.reset_password(db, token, new_password)
        revoked = self.ledger.revoke_all_for_account(db, account.id, reason="password_reset")
        logger.info(f"Password reset ended {revoked} sessions for account {account.id}")
        return account

    def delete_account(self, db: Session, account: Account) -> bool:
        return self.guard.delete_account(db, account.id)


auth_service = AuthService()
