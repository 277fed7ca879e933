"""TOTP two-factor verification with single-use backup codes."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import secrets
from dataclasses import dataclass
from typing import List, Optional

import pyotp
import qrcode
from qrcode.image.svg import SvgPathImage
from sqlalchemy.orm import Session

from feedauth.config import Settings, settings as default_settings
from feedauth.core.exceptions import AuthenticationError, BusinessLogicError, ValidationError
from feedauth.core.security import digest_secret, secrets_match
from feedauth.models.account import Account
from feedauth.services.credential_service import CredentialGuard, credential_guard as default_guard

logger = logging.getLogger(__name__)


@dataclass
class TwoFactorSetup:
    secret: str
    qr_payload: str
    qr_code: str


def _normalize_code(code: Optional[str]) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().replace(" ", "").replace("-", "").upper()


class TwoFactorVerifier:
    """Generate secrets and backup codes, verify submitted codes."""

    def __init__(
        self,
        config: Settings = default_settings,
        guard: CredentialGuard = default_guard,
    ) -> None:
        self.settings = config
        self.guard = guard

    def begin_setup(self, account: Account) -> TwoFactorSetup:
        """New secret and QR payload. Nothing is persisted until enable()."""
        if account.twofa_enabled:
            raise BusinessLogicError("2FA is already enabled for this account")

        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(
            name=account.email, issuer_name=self.settings.TOTP_ISSUER
        )
        logger.info(f"2FA setup initiated for account: {account.email}")
        return TwoFactorSetup(secret=secret, qr_payload=uri, qr_code=self._render_qr(uri))

    @staticmethod
    def _render_qr(payload: str) -> str:
        image = qrcode.make(payload, image_factory=SvgPathImage)
        buffer = io.BytesIO()
        image.save(buffer)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"

    def verify_totp(self, secret: str, code: str) -> bool:
        normalized = _normalize_code(code)
        if not secret or not normalized.isdigit():
            return False
        try:
            return pyotp.TOTP(secret).verify(normalized, valid_window=self.settings.TOTP_VALID_WINDOW)
        except (binascii.Error, ValueError):
            logger.warning("Rejected TOTP secret that is not valid base32")
            return False

    def generate_backup_codes(self) -> List[str]:
        return [secrets.token_hex(4).upper() for _ in range(self.settings.BACKUP_CODE_COUNT)]

    def enable(self, db: Session, account: Account, secret: str, code: str) -> List[str]:
        """
        Confirm a setup secret and turn 2FA on

        Returns:
            The plaintext backup codes. They are stored only as digests and
            cannot be retrieved again.
        """
        if account.twofa_enabled:
            raise BusinessLogicError("2FA is already enabled for this account")
        if not secret or not code:
            raise ValidationError("Token and secret are required")
        if not self.verify_totp(secret, code):
            raise ValidationError("Invalid 2FA token")

        backup_codes = self.generate_backup_codes()
        account.twofa_secret = secret
        account.twofa_enabled = True
        account.twofa_backup_codes = [digest_secret(c) for c in backup_codes]
        db.commit()
        db.refresh(account)

        logger.info(f"2FA enabled for account: {account.email}")
        return backup_codes

    def disable(self, db: Session, account: Account, password: str, code: str) -> Account:
        if not account.twofa_enabled:
            raise BusinessLogicError("2FA is not enabled for this account")
        if not password:
            raise ValidationError("Password is required to disable 2FA")
        if not code:
            raise ValidationError("2FA token is required")

        if not account.password_hash or not self.guard.verify_password(password, account.password_hash):
            raise AuthenticationError("Invalid password")
        if not self.verify(db, account, code):
            raise AuthenticationError("Invalid 2FA token")

        account.twofa_enabled = False
        account.twofa_secret = None
        account.twofa_backup_codes = None
        db.commit()
        db.refresh(account)

        logger.info(f"2FA disabled for account: {account.email}")
        return account

    def verify(self, db: Session, account: Account, code: str) -> bool:
        """
        TOTP first, then backup codes. A matching backup code is consumed.

        Returns False on no match; the caller decides what to do.
        """
        if not account.twofa_enabled or not account.twofa_secret:
            return False

        if self.verify_totp(account.twofa_secret, code):
            return True

        normalized = _normalize_code(code)
        if not normalized:
            return False

        # Lock the row so one backup code cannot be spent twice concurrently
        locked = (
            db.query(Account)
            .filter(Account.id == account.id)
            .populate_existing()
            .with_for_update()
            .one()
        )
        remaining = list(locked.twofa_backup_codes or [])
        submitted = digest_secret(normalized)
        for index, stored in enumerate(remaining):
            if secrets_match(stored, submitted):
                locked.twofa_backup_codes = remaining[:index] + remaining[index + 1:]
                db.commit()
                db.refresh(account)
                logger.info(
                    f"Backup code used for account {account.email}; "
                    f"{len(remaining) - 1} remaining"
                )
                return True

        db.commit()
        logger.warning(f"2FA verification failed for account: {account.email}")
        return False

    @staticmethod
    def status(account: Account) -> dict:
        return {
            "twofa_enabled": bool(account.twofa_enabled),
            "backup_codes_remaining": len(account.twofa_backup_codes or []),
        }


twofa_verifier = TwoFactorVerifier()
