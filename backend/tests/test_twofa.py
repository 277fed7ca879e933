import time

import pyotp
import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedauth.config import Settings
from feedauth.core.database import Base, enable_sqlite_foreign_keys
from feedauth.core.exceptions import AuthenticationError, BusinessLogicError, ValidationError
from feedauth.schemas.auth import TwoFactorEnableRequest
from feedauth.services.credential_service import CredentialGuard
from feedauth.services.twofa_service import TwoFactorVerifier


def _make_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def _setup():
    cfg = Settings(BCRYPT_ROUNDS=4)
    guard = CredentialGuard(cfg)
    return guard, TwoFactorVerifier(cfg, guard)


def _enabled_account(db, guard, verifier):
    account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
    setup = verifier.begin_setup(account)
    codes = verifier.enable(db, account, setup.secret, pyotp.TOTP(setup.secret).now())
    return account, setup.secret, codes


def test_begin_setup_returns_secret_uri_and_qr_without_persisting():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        setup = verifier.begin_setup(account)

        assert len(setup.secret) >= 16
        assert setup.qr_payload.startswith("otpauth://totp/")
        assert "issuer=RSSFeeder" in setup.qr_payload
        assert setup.qr_code.startswith("data:image/svg+xml;base64,")

        db.refresh(account)
        assert account.twofa_secret is None
        assert account.twofa_enabled is False
    finally:
        db.close()


def test_enable_returns_ten_backup_codes_stored_as_digests():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account, secret, codes = _enabled_account(db, guard, verifier)

        assert len(codes) == 10
        assert len(set(codes)) == 10
        assert account.twofa_enabled is True
        assert account.twofa_secret == secret
        assert len(account.twofa_backup_codes) == 10
        assert not set(codes) & set(account.twofa_backup_codes)

        with pytest.raises(BusinessLogicError):
            verifier.begin_setup(account)
    finally:
        db.close()


def test_enable_rejects_wrong_code():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        setup = verifier.begin_setup(account)
        wrong = pyotp.TOTP(setup.secret).at(time.time() + 600)
        with pytest.raises(ValidationError):
            verifier.enable(db, account, setup.secret, wrong)
        assert account.twofa_enabled is False
    finally:
        db.close()


def test_enable_with_non_base32_secret_is_validation_error():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        assert verifier.verify_totp("1111111111111111", "123456") is False
        with pytest.raises(ValidationError):
            verifier.enable(db, account, "1111111111111111", "123456")
        assert account.twofa_enabled is False
    finally:
        db.close()


def test_enable_request_requires_base32_secret():
    with pytest.raises(PydanticValidationError):
        TwoFactorEnableRequest(token="123456", secret="1111111111111111")
    body = TwoFactorEnableRequest(token="123456", secret=" jbswy3dpehpk3pxp ")
    assert body.secret == "JBSWY3DPEHPK3PXP"


def test_totp_accepts_one_step_drift_and_rejects_five():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account, secret, _ = _enabled_account(db, guard, verifier)
        totp = pyotp.TOTP(secret)

        assert verifier.verify(db, account, totp.now()) is True
        assert verifier.verify(db, account, totp.at(time.time() - 30)) is True
        assert verifier.verify(db, account, totp.at(time.time() + 150)) is False
        assert verifier.verify(db, account, "") is False
    finally:
        db.close()


def test_backup_code_is_single_use():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account, _, codes = _enabled_account(db, guard, verifier)

        assert verifier.verify(db, account, codes[0].lower()) is True
        assert verifier.status(account) == {"twofa_enabled": True, "backup_codes_remaining": 9}
        assert verifier.verify(db, account, codes[0]) is False
        assert verifier.verify(db, account, codes[1]) is True
        assert verifier.status(account)["backup_codes_remaining"] == 8
    finally:
        db.close()


def test_disable_requires_password_and_code():
    db = _make_session()
    guard, verifier = _setup()
    try:
        account, secret, _ = _enabled_account(db, guard, verifier)
        code = pyotp.TOTP(secret).now()

        with pytest.raises(AuthenticationError):
            verifier.disable(db, account, "Wrong-pass1!", code)
        with pytest.raises(AuthenticationError):
            verifier.disable(db, account, "Secur3Pass!1", "000000" if code != "000000" else "111111")

        verifier.disable(db, account, "Secur3Pass!1", code)
        assert account.twofa_enabled is False
        assert account.twofa_secret is None
        assert account.twofa_backup_codes is None
        assert verifier.verify(db, account, code) is False
    finally:
        db.close()
