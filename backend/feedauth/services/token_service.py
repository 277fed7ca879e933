"""Signed bearer-token issuance and verification."""

from __future__ import annotations

import calendar
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from feedauth.config import Settings, settings as default_settings
from feedauth.core import clock
from feedauth.core.exceptions import ConfigurationError, TokenExpiredError, TokenInvalidError
from feedauth.models.account import Account

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_jti: str
    refresh_jti: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


def _epoch(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


class TokenService:
    """Issue and verify access/refresh JWTs. Pure: never touches storage."""

    def __init__(self, config: Settings = default_settings) -> None:
        self.settings = config

    def _secret(self) -> str:
        if not self.settings.SECRET_KEY:
            raise ConfigurationError("Token signing secret is not configured")
        return self.settings.SECRET_KEY

    def audience_for(self, kind: TokenKind) -> str:
        if kind == TokenKind.REFRESH:
            return self.settings.refresh_audience
        return self.settings.access_audience

    def lifetime_for(self, kind: TokenKind) -> timedelta:
        if kind == TokenKind.REFRESH:
            return timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS)
        return timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def issue(
        self,
        account: Account,
        session_id: Optional[int] = None,
        kind: TokenKind = TokenKind.ACCESS,
    ) -> str:
        """
        Create a signed token for an account

        Args:
            account: Account the token is issued for
            session_id: Session the token is bound to, if any
            kind: ACCESS or REFRESH; selects audience and lifetime

        Returns:
            str: Encoded JWT
        """
        claims = {
            "sub": str(account.id),
            "email": account.email,
            "name": account.name,
        }
        if session_id is not None:
            claims["sid"] = session_id
        return self._encode(claims, kind)

    def _encode(self, claims: Dict[str, Any], kind: TokenKind) -> str:
        now = clock.utcnow()
        to_encode = dict(claims)
        to_encode.update({
            "jti": str(uuid.uuid4()),
            "iat": _epoch(now),
            "exp": _epoch(now + self.lifetime_for(kind)),
            "nonce": secrets.token_hex(8),  # Two tokens issued in the same second still differ
            "iss": self.settings.JWT_ISSUER,
            "aud": self.audience_for(kind),
        })
        token = jwt.encode(to_encode, self._secret(), algorithm=self.settings.ALGORITHM)
        logger.debug(f"Issued {kind.value} token for account {to_encode['sub']}")
        return token

    def issue_pair(self, account: Account, session_id: Optional[int] = None) -> TokenPair:
        access_token = self.issue(account, session_id, TokenKind.ACCESS)
        refresh_token = self.issue(account, session_id, TokenKind.REFRESH)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_jti=self.unverified_claims(access_token)["jti"],
            refresh_jti=self.unverified_claims(refresh_token)["jti"],
            expires_in=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    def verify(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> Dict[str, Any]:
        """
        Verify signature, issuer, audience and expiry

        Raises:
            TokenExpiredError: Signature valid but token expired
            TokenInvalidError: Any other structural, signature or claim failure
        """
        if not self.validate_structure(token):
            raise TokenInvalidError("Invalid token format")
        try:
            payload = jwt.decode(
                token,
                self._secret(),
                algorithms=[self.settings.ALGORITHM],
                audience=self.audience_for(kind),
                issuer=self.settings.JWT_ISSUER,
            )
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError as exc:
            logger.debug(f"Token verification failed: {exc}")
            raise TokenInvalidError()

        if not payload.get("sub") or not payload.get("jti"):
            raise TokenInvalidError("Malformed token")
        return payload

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Issue a new access token from a refresh token

        The refresh token itself is returned unchanged (no rotation).
        """
        claims = self.verify(refresh_token, TokenKind.REFRESH)
        carried = {key: claims[key] for key in ("sub", "email", "name", "sid") if key in claims}
        access_token = self._encode(carried, TokenKind.ACCESS)

        logger.info(f"Access token refreshed for account {claims['sub']}")
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_jti=self.unverified_claims(access_token)["jti"],
            refresh_jti=claims["jti"],
            expires_in=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    def time_remaining(self, claims: Dict[str, Any]) -> timedelta:
        remaining = self.expires_at(claims) - clock.utcnow()
        return max(remaining, timedelta(0))

    def should_refresh(self, access_token: str) -> bool:
        try:
            claims = self.verify(access_token, TokenKind.ACCESS)
        except (TokenExpiredError, TokenInvalidError):
            return True
        threshold = timedelta(minutes=self.settings.TOKEN_REFRESH_THRESHOLD_MINUTES)
        return self.time_remaining(claims) < threshold

    @staticmethod
    def expires_at(claims: Dict[str, Any]) -> datetime:
        return clock.from_timestamp(int(claims["exp"]))

    @staticmethod
    def issued_at(claims: Dict[str, Any]) -> datetime:
        return clock.from_timestamp(int(claims["iat"]))

    @staticmethod
    def unverified_claims(token: str) -> Dict[str, Any]:
        return jwt.get_unverified_claims(token)

    @staticmethod
    def validate_structure(token: Any) -> bool:
        """Three non-empty base64url segments."""
        if not token or not isinstance(token, str):
            return False
        parts = token.split(".")
        if len(parts) != 3:
            return False
        return all(part and _SEGMENT_RE.match(part) for part in parts)

    @staticmethod
    def extract_bearer(authorization: Optional[str]) -> Optional[str]:
        if not authorization:
            return None
        parts = authorization.strip().split()
        if len(parts) != 2 or parts[0] != "Bearer":
            return None
        return parts[1]


token_service = TokenService()
