from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedauth.config import Settings
from feedauth.core import clock
from feedauth.core.database import Base, enable_sqlite_foreign_keys
from feedauth.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    DuplicateEmailError,
    InvalidCredentialsError,
    ValidationError,
)
from feedauth.core.security import get_password_hash, verify_password
from feedauth.models.account import Account
from feedauth.services.credential_service import CredentialGuard


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


def _guard():
    return CredentialGuard(Settings(BCRYPT_ROUNDS=4))


def _advance(monkeypatch, delta):
    real = clock.utcnow()
    monkeypatch.setattr(clock, "utcnow", lambda: real + delta)


def test_password_hash_round_trip():
    hashed = get_password_hash("Secur3Pass!1", rounds=4)
    assert hashed != "Secur3Pass!1"
    assert verify_password("Secur3Pass!1", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_verify_password_rejects_malformed_hash():
    with pytest.raises(ValidationError):
        verify_password("Secur3Pass!1", "not-a-bcrypt-hash")
    with pytest.raises(ValidationError):
        verify_password("", get_password_hash("x", rounds=4))


def test_create_account_normalizes_email_and_rejects_duplicates():
    db = _make_session()
    guard = _guard()
    try:
        account = guard.create_account(db, "  A@X.com ", "Alice", "Secur3Pass!1")
        assert account.email == "a@x.com"
        assert account.password_hash != "Secur3Pass!1"
        assert account.failed_login_attempts == 0

        with pytest.raises(DuplicateEmailError):
            guard.create_account(db, "a@x.com", "Other", "Secur3Pass!1")
    finally:
        db.close()


def test_unknown_email_and_wrong_password_look_the_same():
    db = _make_session()
    guard = _guard()
    try:
        guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        with pytest.raises(InvalidCredentialsError) as unknown:
            guard.authenticate(db, "nobody@x.com", "Secur3Pass!1")
        with pytest.raises(InvalidCredentialsError) as wrong:
            guard.authenticate(db, "a@x.com", "Wrong-pass1!")
        assert unknown.value.message == wrong.value.message
    finally:
        db.close()


def test_password_over_bcrypt_limit_is_typed_error():
    long_password = "Aa1!" + "x" * 80
    db = _make_session()
    guard = _guard()
    try:
        with pytest.raises(ValidationError):
            guard.create_account(db, "b@x.com", "Bob", long_password)
        assert guard.get_by_email(db, "b@x.com") is None

        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        with pytest.raises(InvalidCredentialsError):
            guard.authenticate(db, "a@x.com", long_password)
        db.refresh(account)
        assert account.failed_login_attempts == 1
    finally:
        db.close()


def test_lockout_after_five_failures_then_unlock(monkeypatch):
    db = _make_session()
    guard = _guard()
    try:
        guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")

        for _ in range(4):
            with pytest.raises(InvalidCredentialsError):
                guard.authenticate(db, "a@x.com", "Wrong-pass1!")
        with pytest.raises(AccountLockedError):
            guard.authenticate(db, "a@x.com", "Wrong-pass1!")

        account = guard.get_by_email(db, "a@x.com")
        assert account.failed_login_attempts == 5
        assert account.is_locked() is True

        # Correct password is still refused while locked
        with pytest.raises(AccountLockedError):
            guard.authenticate(db, "a@x.com", "Secur3Pass!1")

        _advance(monkeypatch, timedelta(minutes=6))
        assert account.is_locked() is False
        authenticated = guard.authenticate(db, "a@x.com", "Secur3Pass!1")
        assert authenticated.failed_login_attempts == 0
        assert authenticated.locked_until is None
        assert authenticated.last_login is not None
    finally:
        db.close()


def test_expired_lock_starts_a_fresh_failure_window(monkeypatch):
    db = _make_session()
    guard = _guard()
    try:
        guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                guard.authenticate(db, "a@x.com", "Wrong-pass1!")

        _advance(monkeypatch, timedelta(minutes=6))
        with pytest.raises(InvalidCredentialsError):
            guard.authenticate(db, "a@x.com", "Wrong-pass1!")
        account = guard.get_by_email(db, "a@x.com")
        assert account.failed_login_attempts == 1
        assert account.is_locked() is False
    finally:
        db.close()


def test_success_resets_failure_counter():
    db = _make_session()
    guard = _guard()
    try:
        guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        for _ in range(3):
            with pytest.raises(InvalidCredentialsError):
                guard.authenticate(db, "a@x.com", "Wrong-pass1!")
        account = guard.authenticate(db, "a@x.com", "Secur3Pass!1")
        assert account.failed_login_attempts == 0
    finally:
        db.close()


def test_external_account_cannot_use_password_login():
    db = _make_session()
    guard = _guard()
    try:
        account = guard.create_account(db, "g@x.com", "Gina", None, external_id="google-123")
        assert account.password_hash is None
        with pytest.raises(InvalidCredentialsError):
            guard.authenticate(db, "g@x.com", "anything")
    finally:
        db.close()


def test_change_password_requires_current_password():
    db = _make_session()
    guard = _guard()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        with pytest.raises(AuthenticationError):
            guard.change_password(db, account, "Wrong-pass1!", "N3w-Password!")

        guard.change_password(db, account, "Secur3Pass!1", "N3w-Password!")
        assert guard.authenticate(db, "a@x.com", "N3w-Password!").id == account.id
    finally:
        db.close()


def test_reset_token_is_stored_as_digest_and_expires(monkeypatch):
    db = _make_session()
    guard = _guard()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        token = guard.issue_reset_token(db, account)
        stored = db.get(Account, account.id)
        assert stored.reset_token_hash and stored.reset_token_hash != token

        with pytest.raises(ValidationError):
            guard.reset_password(db, "not-the-token", "N3w-Password!")

        _advance(monkeypatch, timedelta(minutes=61))
        with pytest.raises(ValidationError) as exc:
            guard.reset_password(db, token, "N3w-Password!")
        assert "expired" in exc.value.message
    finally:
        db.close()


def test_reset_password_clears_lock_and_token():
    db = _make_session()
    guard = _guard()
    try:
        account = guard.create_account(db, "a@x.com", "Alice", "Secur3Pass!1")
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                guard.authenticate(db, "a@x.com", "Wrong-pass1!")

        token = guard.issue_reset_token(db, account)
        reset = guard.reset_password(db, token, "N3w-Password!")
        assert reset.locked_until is None
        assert reset.failed_login_attempts == 0
        assert reset.reset_token_hash is None

        assert guard.authenticate(db, "a@x.com", "N3w-Password!").id == account.id
        with pytest.raises(ValidationError):
            guard.reset_password(db, token, "An0ther-Pass!")
    finally:
        db.close()
