"""Authentication gate - per-request token, revocation, session and account checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from feedauth.config import Settings, settings as default_settings
from feedauth.core import clock
from feedauth.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    RateLimitExceededError,
    TokenExpiredError,
    TokenInvalidError,
)
from feedauth.models.account import Account
from feedauth.models.session import AuthSession
from feedauth.services.credential_service import CredentialGuard, credential_guard
from feedauth.services.rate_limiter import RateLimitBackend, rate_limiter
from feedauth.services.revocation_service import RevocationLedger, revocation_ledger
from feedauth.services.session_service import SessionRegistry, session_registry
from feedauth.services.token_service import TokenKind, TokenService, token_service

logger = logging.getLogger(__name__)

AUTH_FAILURES = Counter(
    "feedauth_auth_failures_total",
    "Rejected authenticated requests by failed check",
    ["reason"],
)

GENERIC_FAILURE = "Invalid or expired credentials"


@dataclass
class AuthContext:
    account: Account
    claims: Dict[str, Any]
    token: str
    session: Optional[AuthSession] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def account_id(self) -> int:
        return self.account.id

    @property
    def session_id(self) -> Optional[int]:
        return self.session.id if self.session is not None else None


class AuthGate:
    """
    Runs the chain for every authenticated request:

    token present -> verified -> not revoked -> bound session valid ->
    account loaded -> account not locked.

    The specific failed check is logged; callers only ever see a generic
    AuthenticationError.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        tokens: TokenService = token_service,
        sessions: SessionRegistry = session_registry,
        ledger: RevocationLedger = revocation_ledger,
        guard: CredentialGuard = credential_guard,
        limiter: RateLimitBackend = rate_limiter,
    ) -> None:
        self.settings = config
        self.tokens = tokens
        self.sessions = sessions
        self.ledger = ledger
        self.guard = guard
        self.limiter = limiter

    def _reject(self, reason: str, detail: str) -> AuthenticationError:
        AUTH_FAILURES.labels(reason).inc()
        logger.warning(f"Authentication failed ({reason}): {detail}")
        return AuthenticationError(GENERIC_FAILURE)

    def authenticate(self, db: Session, authorization: Optional[str]) -> AuthContext:
        token = self.tokens.extract_bearer(authorization)
        if not token:
            raise self._reject("no_token", "no bearer token provided")

        try:
            claims = self.tokens.verify(token, TokenKind.ACCESS)
        except TokenExpiredError:
            raise self._reject("token_expired", "access token expired")
        except TokenInvalidError as exc:
            raise self._reject("token_invalid", exc.message)

        if self.ledger.is_revoked(db, claims["jti"]):
            raise self._reject("token_revoked", f"token {claims['jti']} is revoked")

        try:
            account_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise self._reject("token_invalid", f"non-numeric subject {claims.get('sub')!r}")

        session = None
        if claims.get("sid") is not None:
            session = self.sessions.get(db, claims["sid"])
            if session is None or not session.is_valid() or session.account_id != account_id:
                raise self._reject("session_invalid", f"session {claims['sid']} is not valid")

        account = self.guard.get_by_id(db, account_id)
        if account is None:
            raise self._reject("account_missing", f"account {account_id} not found")

        if account.is_locked():
            raise self._reject("account_locked", f"account {account_id} is locked")

        if session is not None:
            self.sessions.touch(db, session.id)

        logger.debug(f"Authentication successful for account {account.id}")
        return AuthContext(account=account, claims=claims, token=token, session=session)

    def optional_authenticate(self, db: Session, authorization: Optional[str]) -> Optional[AuthContext]:
        if not authorization:
            return None
        try:
            return self.authenticate(db, authorization)
        except AuthenticationError:
            return None

    def require_fresh_auth(self, context: Optional[AuthContext], max_age_seconds: int) -> None:
        if context is None:
            raise AuthenticationError("Authentication required")
        age = clock.utcnow() - self.tokens.issued_at(context.claims)
        if age > timedelta(seconds=max_age_seconds):
            logger.warning(f"Fresh authentication required for account {context.account_id}")
            raise AuthenticationError("Fresh authentication required")

    @staticmethod
    def require_ownership(context: Optional[AuthContext], resource_account_id: Any) -> None:
        if context is None:
            raise AuthenticationError("Authentication required")
        if resource_account_id in (None, ""):
            raise AuthorizationError("Resource user ID not provided")
        try:
            owner = int(resource_account_id)
        except (TypeError, ValueError):
            raise AuthorizationError("Resource user ID not provided")
        if owner != context.account_id:
            logger.warning(f"Ownership check failed: account {context.account_id} on {owner}")
            raise AuthorizationError("Access denied - resource belongs to another user")

    @staticmethod
    def require_role(context: Optional[AuthContext], *roles: str) -> None:
        if context is None:
            raise AuthenticationError("Authentication required")
        role = context.account.role or "user"
        if role not in roles:
            logger.warning(f"Role check failed: account {context.account_id} has {role!r}")
            raise AuthorizationError("Insufficient permissions")

    def logout(self, db: Session, context: AuthContext, refresh_token: Optional[str] = None) -> Dict[str, Any]:
        """Revoke the current token (and an optional refresh token) and end the bound session."""
        self.ledger.revoke(db, context.claims, reason="user_logout")

        refresh_revoked = False
        if refresh_token:
            try:
                refresh_claims = self.tokens.verify(refresh_token, TokenKind.REFRESH)
            except (TokenExpiredError, TokenInvalidError):
                refresh_claims = None
            if refresh_claims and str(refresh_claims["sub"]) == str(context.account_id):
                self.ledger.revoke(db, refresh_claims, reason="user_logout")
                refresh_revoked = True

        session_ended = False
        if context.session is not None:
            session_ended = self.sessions.invalidate(db, context.session.id)

        logger.info(f"Account {context.account_id} logged out (token {context.claims['jti']})")
        return {"refresh_token_revoked": refresh_revoked, "session_ended": session_ended}

    def check_rate(self, key: str, limit: int, window_seconds: int, message: str) -> None:
        decision = self.limiter.hit(key, limit, window_seconds)
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitExceededError(
                f"{message} Try again in {decision.retry_after} seconds.",
                retry_after=decision.retry_after,
            )

    def check_login_rate(self, client_address: Optional[str]) -> None:
        """Best-effort per-client throttle on login; lockout remains the real control."""
        self.check_rate(
            f"login:{client_address or 'unknown'}",
            self.settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
            self.settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
            "Too many authentication attempts.",
        )


auth_gate = AuthGate()
